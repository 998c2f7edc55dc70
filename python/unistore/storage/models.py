"""
The data model shared by the storage adapters, backends, and the unified client:  connection
state, directory entries, listing results, and file content.
"""
import time
from collections import namedtuple, OrderedDict
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import List, Iterable

class EntryKind(Enum):
    """
    the kind of item a :py:class:`FileEntry` represents.  An entry is exactly one of these.
    """
    FILE = "file"
    DIRECTORY = "directory"

DIRECTORY_MIME = "httpd/unix-directory"
DEFAULT_MIME = "application/octet-stream"

class FileEntry:
    """
    a description of one item in a directory.

    :ivar str       path:  the full, protocol-relative path to the item
    :ivar str       name:  the display name (the last path segment); never empty
    :ivar datetime  modified:  the last-modified time (the current time if the backend did not
                           report one)
    :ivar int       size:  the size in bytes; directories report 0
    :ivar EntryKind kind:  whether the item is a file or a directory
    :ivar str       mime:  the MIME type, if known
    :ivar str       etag:  an opaque revision tag, if the backend provides one
    """

    def __init__(self, path: str, kind: EntryKind, name: str=None, size: int=0,
                 modified: datetime=None, mime: str=None, etag: str=None, metadata: Mapping=None):
        if not isinstance(kind, EntryKind):
            kind = EntryKind(kind)
        if not name:
            name = basename(path)
        if not name:
            raise ValueError("FileEntry: unable to determine a display name from path: "+repr(path))

        self.path = path
        self.name = name
        self.kind = kind
        self.size = int(size or 0) if kind == EntryKind.FILE else 0
        self.modified = modified or datetime.now(timezone.utc)
        if mime is None:
            mime = DIRECTORY_MIME if kind == EntryKind.DIRECTORY else None
        self.mime = mime
        self.etag = etag
        self.metadata = dict(metadata) if metadata else {}

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind == EntryKind.FILE

    def to_dict(self) -> OrderedDict:
        """
        return a JSON-serializable summary of this entry
        """
        out = OrderedDict([
            ("path", self.path),
            ("name", self.name),
            ("type", self.kind.value),
            ("size", self.size),
            ("modified", self.modified.isoformat())
        ])
        if self.mime:
            out['mime'] = self.mime
        if self.etag:
            out['etag'] = self.etag
        return out

    def __eq__(self, other):
        if not isinstance(other, FileEntry):
            return NotImplemented
        return (self.path, self.name, self.kind, self.size) == \
               (other.path, other.name, other.kind, other.size)

    def __repr__(self):
        return "FileEntry(%r, %s, size=%d)" % (self.path, self.kind.value, self.size)


def basename(path: str) -> str:
    """
    return the last segment of a slash-delimited path, ignoring any trailing slash
    """
    if not path:
        return ''
    return path.rstrip('/').split('/')[-1]


class DirectoryListing:
    """
    the result of listing a directory:  the entries plus whatever pagination information the
    backend provided.  Backends that do not paginate return ``has_more=False``.
    """

    def __init__(self, files: Iterable[FileEntry], path: str='', has_more: bool=False,
                 next_marker: str=None, total_count: int=None):
        self.files = list(files)
        self.path = path
        self.has_more = has_more
        self.next_marker = next_marker
        self.total_count = total_count

    def __len__(self):
        return len(self.files)

    def __iter__(self):
        return iter(self.files)

    def names(self) -> List[str]:
        return [f.name for f in self.files]


SortOptions = namedtuple("SortOptions", "sort_by sort_order")
SortOptions.__doc__ = "a default sort field (name|size|modified) and direction (asc|desc)"

SORT_FIELDS = ("name", "size", "modified")
SORT_ORDERS = ("asc", "desc")

class ListOptions:
    """
    hints controlling how a directory is listed.  Backends that do not support a hint ignore it
    silently; the caller is responsible for client-side sorting (see :py:func:`sort_entries`)
    when ordering matters.
    """

    def __init__(self, page_size: int=None, marker: str=None, prefix: str=None,
                 recursive: bool=False, sort_by: str=None, sort_order: str=None):
        if sort_by is not None and sort_by not in SORT_FIELDS:
            raise ValueError("ListOptions: unsupported sort_by value: "+str(sort_by))
        if sort_order is not None and sort_order not in SORT_ORDERS:
            raise ValueError("ListOptions: unsupported sort_order value: "+str(sort_order))
        self.page_size = page_size
        self.marker = marker
        self.prefix = prefix
        self.recursive = recursive
        self.sort_by = sort_by
        self.sort_order = sort_order

    def cache_key(self) -> tuple:
        return (self.page_size, self.marker, self.prefix, self.recursive, self.sort_by, self.sort_order)


def sort_entries(entries: Iterable[FileEntry], sort_by: str="name", sort_order: str="asc") -> List[FileEntry]:
    """
    sort directory entries client-side.  Directories always precede files; within each group
    entries are ordered by the requested field.
    """
    if sort_by == "size":
        key = lambda e: e.size
    elif sort_by == "modified":
        key = lambda e: e.modified
    else:
        key = lambda e: e.name.lower()

    reverse = (sort_order == "desc")
    dirs = sorted([e for e in entries if e.is_dir], key=key, reverse=reverse)
    files = sorted([e for e in entries if not e.is_dir], key=key, reverse=reverse)
    return dirs + files


class FileContent:
    """
    decoded text read from a file (or a range of it).

    :ivar str  content:  the decoded text
    :ivar int     size:  the number of bytes that were read
    :ivar str encoding:  the name of the encoding used to decode the bytes
    :ivar int total_size:  the full size of the file, if the backend reported it
    """

    def __init__(self, content: str, size: int, encoding: str, total_size: int=None):
        self.content = content
        self.size = size
        self.encoding = encoding
        self.total_size = total_size

    def __repr__(self):
        return "FileContent(size=%d, encoding=%s)" % (self.size, self.encoding)


# parameters that, beyond the URL, select which storage a connection reaches
LOCATION_PARAMS = ('root_path', 'endpoint', 'path_prefix', 'port', 'share', 'organization')

class Connection:
    """
    a live session with one backend.  It holds the protocol identifier, the base address,
    credentials, and backend-specific fields (bucket, region, share, private key path,
    organization, etc.) as normalized by the adapter.  A :py:class:`~unistore.storage.client.StorageClient`
    owns at most one at a time.
    """

    def __init__(self, protocol: str, url: str=None, params: Mapping=None, name: str=None):
        self.protocol = protocol
        self.url = url
        self.params = dict(params) if params else {}
        self.name = name
        self.connected = False
        self.connected_at = None

    def get(self, param: str, default=None):
        """
        return the value of a backend-specific connection parameter
        """
        return self.params.get(param, default)

    @property
    def identity(self) -> tuple:
        """
        a key that distinguishes the storage this connection reaches from that of any other
        connection:  the protocol, the normalized location, and the user.  Two connections can
        share a name; they share an identity only if they reach the same storage as the same user.
        """
        loc = (self.get('url') or self.url or '').rstrip('/')
        where = tuple((p, str(self.get(p))) for p in LOCATION_PARAMS if self.get(p))
        return (self.protocol, loc) + where + (self.get('username') or '',)

    def mark_connected(self):
        self.connected = True
        self.connected_at = time.time()

    def mark_disconnected(self):
        self.connected = False

    def __repr__(self):
        return "Connection(%s, %r, connected=%s)" % (self.protocol, self.url, self.connected)
