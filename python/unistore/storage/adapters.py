"""
Protocol adapters:  stateless strategy objects that supply the protocol-specific parts of storage
access--URL construction, connection naming, path preprocessing, connection-parameter defaults,
and declared capabilities.

An adapter is selected once, by type tag, when a :py:class:`~unistore.storage.client.StorageClient`
connects (see :py:func:`get_adapter`); it is never switched afterward.  Adapters hold no mutable
state and can be shared freely.
"""
import re
from collections.abc import Mapping
from urllib.parse import urlparse, quote

from unistore.base.config import ConfigurationException
from .models import Connection, SortOptions

__all__ = [ "StorageAdapter", "WebDAVAdapter", "OSSAdapter", "LocalAdapter", "SSHAdapter",
            "SMBAdapter", "HuggingFaceAdapter", "ADAPTERS", "get_adapter", "adapter_types" ]

class StorageAdapter:
    """
    the base adapter.  Subclasses override the class attributes that declare capabilities and any
    of the hook methods whose default behavior does not fit their protocol.
    """
    protocol = None
    supports_search = False
    supports_custom_root_display = False
    default_page_size = None
    default_sort = SortOptions("name", "asc")

    def build_url(self, path: str, conn: Connection) -> str:
        """
        return an absolute address (as a protocol URL) for the item with the given path
        """
        return f"{self.protocol}://{path.lstrip('/')}"

    def generate_connection_name(self, config: Mapping) -> str:
        """
        return a display name for a connection created from the given configuration
        """
        return self.protocol

    def preprocess_path(self, path: str, conn: Connection) -> str:
        """
        normalize a path requested by a caller into the form the backend expects.  The default
        removes surrounding whitespace and leading slashes.
        """
        return (path or '').strip().lstrip('/')

    def preprocess_connection(self, config: Mapping) -> dict:
        """
        validate and fill in defaults for the connection parameters.  This is called before any
        network access; it raises :py:class:`~unistore.base.config.ConfigurationException` if a
        required parameter is missing.

        :return: a new dictionary of normalized connection parameters
        """
        return dict(config)

    def post_connect(self, conn: Connection) -> None:
        """
        a hook called after a successful handshake.  The default does nothing.
        """
        pass

    def get_root_display_info(self, conn: Connection):
        """
        return a dictionary describing how the root of this connection should be displayed,
        or None if the backend does not customize it.
        """
        return None

    def _require(self, config: Mapping, *params):
        missing = [p for p in params if not config.get(p)]
        if missing:
            raise ConfigurationException("%s connection: missing required parameter%s: %s" %
                                         (self.protocol, "s" if len(missing) > 1 else "",
                                          ", ".join(missing)), param=missing[0])


class WebDAVAdapter(StorageAdapter):
    """
    adapter for WebDAV and plain HTTP directory servers
    """
    protocol = "webdav"

    def preprocess_connection(self, config):
        self._require(config, "url")
        out = dict(config)
        url = urlparse(out['url'])
        if url.scheme in ("webdav", "dav"):
            out['url'] = "http" + out['url'][len(url.scheme):]
        elif url.scheme in ("webdavs", "davs"):
            out['url'] = "https" + out['url'][len(url.scheme):]
        elif url.scheme not in ("http", "https"):
            raise ConfigurationException("webdav connection: url is not an http(s) URL: "+config['url'],
                                         param="url")
        return out

    def build_url(self, path, conn):
        url = urlparse(conn.get('url') or conn.url or '')
        scheme = "webdavs" if url.scheme == "https" else "webdav"
        base = url.path.strip('/')
        path = path.strip('/')
        full = "/".join(p for p in (base, path) if p)
        return f"{scheme}://{url.netloc}/{full}"

    def generate_connection_name(self, config):
        try:
            host = urlparse(config.get('url', '')).hostname
        except ValueError:
            host = None
        return f"WebDAV ({host or 'unknown'})"


_region_defaults = [
    ("aliyuncs.com",      "cn-hangzhou"),
    ("amazonaws.com",     "us-east-1"),
    ("myqcloud.com",      "ap-beijing"),
    ("myhuaweicloud.com", "cn-north-1"),
]

class OSSAdapter(StorageAdapter):
    """
    adapter for S3-compatible object storage (AWS S3, Aliyun OSS, Tencent COS, Huawei OBS, MinIO, ...).

    The ``bucket`` parameter may include a key prefix (``bucket/some/prefix``); the prefix is split
    off into ``path_prefix`` and applied to every key.
    """
    protocol = "oss"
    default_page_size = 100

    def preprocess_connection(self, config):
        self._require(config, "username", "password", "bucket")
        out = dict(config)

        bucket = out['bucket'].strip().strip('/')
        prefix = out.get('path_prefix', '') or ''
        if '/' in bucket:
            bucket, prefix = bucket.split('/', 1)
        prefix = prefix.strip('/')
        out['bucket'] = bucket
        out['path_prefix'] = prefix + '/' if prefix else ''

        host = out.get('url') or out.get('endpoint') or ''
        if host:
            parsed = urlparse(host if '://' in host else "https://"+host)
            host = parsed.hostname or ''
        out['host'] = host

        if not out.get('region'):
            for domain, region in _region_defaults:
                if domain in host:
                    out['region'] = region
                    break
            else:
                out['region'] = "us-east-1"

        if not out.get('endpoint') or '://' not in out['endpoint']:
            out['endpoint'] = self._endpoint_for(host, out['region'])
        out['url'] = f"oss://{bucket}"
        return out

    def _endpoint_for(self, host, region):
        if not host:
            return None
        if "amazonaws.com" in host:
            if region == "us-east-1":
                return "https://s3.amazonaws.com"
            return f"https://s3.{region}.amazonaws.com"
        if "myqcloud.com" in host:
            return f"https://cos.{region}.myqcloud.com"
        if "myhuaweicloud.com" in host:
            return f"https://obs.{region}.myhuaweicloud.com"
        return f"https://{host}"

    def object_key(self, path: str, conn: Connection) -> str:
        """
        return the full object key for a bucket-relative path, applying the connection's prefix
        """
        return (conn.get('path_prefix') or '') + path.lstrip('/')

    def build_url(self, path, conn):
        return f"oss://{conn.get('bucket')}/{self.object_key(path, conn)}"

    def generate_connection_name(self, config):
        bucket = (config.get('bucket') or '').split('/')[0]
        return f"OSS ({bucket or 'unknown'})"


class LocalAdapter(StorageAdapter):
    """
    adapter for a directory on the local filesystem
    """
    protocol = "local"
    supports_search = True

    def preprocess_connection(self, config):
        out = dict(config)
        root = out.get('root_path') or out.get('url')
        if root and root.startswith("file://"):
            root = urlparse(root).path
        elif root and root.startswith("local://"):
            root = root[len("local://"):]
        if not root:
            raise ConfigurationException("local connection: missing required parameter: root_path",
                                         param="root_path")
        out['root_path'] = root.rstrip('/') or '/'
        out['url'] = "local://" + out['root_path']
        return out

    def preprocess_path(self, path, conn):
        path = (path or '').strip()
        root = conn.get('root_path') or ''
        if root and root != '/' and (path == root or path.startswith(root + '/')):
            path = path[len(root):]
        return path.lstrip('/')

    def build_url(self, path, conn):
        root = (conn.get('root_path') or '').rstrip('/')
        return f"local://{root}/{path.lstrip('/')}"

    def generate_connection_name(self, config):
        root = (config.get('root_path') or config.get('url') or '').rstrip('/')
        folder = root.split('/')[-1] or root or '/'
        return f"Local ({folder})"


class SSHAdapter(StorageAdapter):
    """
    adapter for SFTP access over SSH
    """
    protocol = "ssh"

    def preprocess_connection(self, config):
        out = dict(config)
        url = out.get('url') or ''
        if url.startswith("ssh://") or url.startswith("sftp://"):
            parsed = urlparse(url)
            out['url'] = parsed.hostname
            if parsed.port and not out.get('port'):
                out['port'] = parsed.port
            if parsed.username and not out.get('username'):
                out['username'] = parsed.username
            if parsed.path and parsed.path != '/' and not out.get('root_path'):
                out['root_path'] = parsed.path
        self._require(out, "url", "username")
        out['port'] = int(out.get('port') or 22)
        out['root_path'] = out.get('root_path') or '/'
        return out

    def build_url(self, path, conn):
        host = conn.get('url')
        port = conn.get('port', 22)
        hostport = host if port == 22 else f"{host}:{port}"
        root = (conn.get('root_path') or '/').strip('/')
        full = "/".join(p for p in (root, path.strip('/')) if p)
        return f"ssh://{hostport}/{full}"

    def generate_connection_name(self, config):
        host = config.get('url') or 'unknown'
        if '://' in host:
            host = urlparse(host).hostname or host
        port = int(config.get('port') or 22)
        return f"SSH ({host})" if port == 22 else f"SSH ({host}:{port})"


class SMBAdapter(StorageAdapter):
    """
    adapter for SMB (Windows/Samba) file shares
    """
    protocol = "smb"

    def preprocess_connection(self, config):
        out = dict(config)
        url = out.get('url') or ''
        if url.startswith("smb://"):
            parsed = urlparse(url)
            out['url'] = parsed.hostname
            parts = parsed.path.strip('/').split('/', 1)
            if parts[0] and not out.get('share'):
                out['share'] = parts[0]
        self._require(out, "url", "share")
        out['share'] = out['share'].strip('/')
        out['port'] = int(out.get('port') or 445)
        return out

    def build_url(self, path, conn):
        return f"smb://{conn.get('url')}/{conn.get('share')}/{path.lstrip('/')}"

    def generate_connection_name(self, config):
        server = config.get('url') or 'unknown'
        if '://' in server:
            server = urlparse(server).hostname or server
        return f"SMB ({server}/{config.get('share') or ''})"


class HuggingFaceAdapter(StorageAdapter):
    """
    adapter for datasets hosted on the Hugging Face Hub.

    Paths have the form ``owner:dataset/path/within/dataset``; the colon stands in for the slash
    in the dataset identifier so that the identifier reads as a single path segment.  An empty path
    lists the configured organization's datasets (or the most popular datasets if no organization
    is configured).
    """
    protocol = "huggingface"
    supports_search = True
    supports_custom_root_display = True
    default_page_size = 20
    default_sort = SortOptions("size", "desc")

    _dsid_re = re.compile(r'^([^/:]+):([^/]+)(?:/(.*))?$')

    def preprocess_connection(self, config):
        out = dict(config)
        out['organization'] = (out.get('organization') or '').strip() or None
        out['url'] = out.get('url') or "https://huggingface.co"
        return out

    def preprocess_path(self, path, conn):
        path = super().preprocess_path(path, conn)
        if not path and conn.get('organization'):
            return conn.get('organization')
        return path

    def split_path(self, path: str):
        """
        split a path into (dataset id, path within the dataset).  The dataset id uses the Hub's
        ``owner/name`` form.  If the path does not name a dataset, (None, path) is returned.
        """
        m = self._dsid_re.match(path.strip('/'))
        if not m:
            return (None, path)
        return (f"{m.group(1)}/{m.group(2)}", m.group(3) or '')

    def build_url(self, path, conn):
        return f"huggingface://{quote(path.lstrip('/'), safe='/:')}"

    def generate_connection_name(self, config):
        org = (config.get('organization') or '').strip()
        return f"HF ({org})" if org else "Hugging Face Hub"

    def get_root_display_info(self, conn):
        org = conn.get('organization')
        if org:
            return { "type": "organization", "name": org, "label": org }
        return { "type": "popular", "name": None, "label": "Popular datasets" }


ADAPTERS = {
    "webdav": WebDAVAdapter,
    "oss": OSSAdapter,
    "s3": OSSAdapter,
    "local": LocalAdapter,
    "ssh": SSHAdapter,
    "sftp": SSHAdapter,
    "smb": SMBAdapter,
    "huggingface": HuggingFaceAdapter,
}

def adapter_types():
    """
    return the list of supported connection type tags
    """
    return list(ADAPTERS.keys())

def get_adapter(type_tag: str) -> StorageAdapter:
    """
    return an adapter instance for the given connection type tag
    :raises ConfigurationException:  if the type tag is not recognized
    """
    cls = ADAPTERS.get((type_tag or '').lower())
    if not cls:
        raise ConfigurationException("Unsupported storage connection type: "+str(type_tag),
                                     param="type")
    return cls()
