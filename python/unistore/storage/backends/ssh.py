"""
The storage driver for files accessed over SSH (via SFTP), built on paramiko.
"""
import stat, posixpath, socket, logging
from datetime import datetime, timezone

import paramiko

from ..models import FileEntry, EntryKind, DirectoryListing, ListOptions
from ..exceptions import *
from .base import StorageBackend, StreamChunks, DEF_STREAM_CHUNK

class SSHBackend(StorageBackend):
    """
    a driver for a directory tree on a remote host, accessed via SFTP.  The connection parameters
    are ``url`` (the host), ``port``, ``username``, and either ``password`` or ``private_key_path``
    (with an optional ``passphrase``); paths are relative to ``root_path``.
    """

    def __init__(self, conn, config=None, log: logging.Logger=None):
        super(SSHBackend, self).__init__(conn, config, log)
        self.root = conn.get('root_path') or '/'
        self._ssh = None
        self._sftp = None

    def _remote(self, path):
        return posixpath.join(self.root, path.lstrip('/')) if path else self.root

    def _wrap(self, ex, path):
        ep = f"ssh://{self.conn.get('url')}{self._remote(path)}"
        if isinstance(ex, FileNotFoundError) or getattr(ex, 'errno', None) == 2:
            return StorageResourceNotFound(ep)
        if isinstance(ex, PermissionError) or getattr(ex, 'errno', None) == 13:
            return StorageUserUnauthorized(ep, "Permission denied: "+ep, code=403)
        if isinstance(ex, paramiko.AuthenticationException):
            return StorageUserUnauthorized(ep, "SSH authentication failed: "+str(ex))
        return StorageCommError(f"SSH communication failure: {str(ex)}", ep, ex)

    @property
    def sftp(self):
        if self._sftp is None:
            raise NotConnected(self.conn.protocol)
        return self._sftp

    def connect(self):
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        kw = { "port": int(self.conn.get('port') or 22), "username": self.conn.get('username'),
               "timeout": self.cfg.get('transport', {}).get('timeout', 30) }
        if self.conn.get('private_key_path'):
            kw['key_filename'] = self.conn.get('private_key_path')
            if self.conn.get('passphrase'):
                kw['passphrase'] = self.conn.get('passphrase')
        if self.conn.get('password'):
            kw['password'] = self.conn.get('password')
        try:
            client.connect(self.conn.get('url'), **kw)
            self._sftp = client.open_sftp()
        except (paramiko.SSHException, socket.error) as ex:
            client.close()
            raise self._wrap(ex, '') from ex
        self._ssh = client
        self.log.info("Connected to %s via SFTP", self.conn.get('url'))

    def disconnect(self):
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._ssh is not None:
            self._ssh.close()
            self._ssh = None

    def list_directory(self, path, options: ListOptions=None):
        base = path.strip('/')
        try:
            attrs = self.sftp.listdir_attr(self._remote(path))
        except (IOError, paramiko.SSHException) as ex:
            raise self._wrap(ex, path) from ex

        entries = []
        for attr in attrs:
            if attr.filename in ('.', '..'):
                continue
            if options and options.prefix and not attr.filename.startswith(options.prefix):
                continue
            relpath = f"{base}/{attr.filename}" if base else attr.filename
            modified = datetime.fromtimestamp(attr.st_mtime, timezone.utc) if attr.st_mtime else None
            if stat.S_ISDIR(attr.st_mode or 0):
                entries.append(FileEntry(relpath, EntryKind.DIRECTORY, modified=modified))
            else:
                entries.append(FileEntry(relpath, EntryKind.FILE, size=attr.st_size or 0,
                                         modified=modified))
        return DirectoryListing(entries, path, total_count=len(entries))

    def read_range(self, path, start=None, length=None):
        try:
            with self.sftp.open(self._remote(path), 'rb') as fd:
                if start is not None:
                    fd.seek(start)
                if length is not None:
                    return fd.read(length)
                fd.prefetch()
                return fd.read()
        except (IOError, paramiko.SSHException) as ex:
            raise self._wrap(ex, path) from ex

    def get_size(self, path):
        try:
            st = self.sftp.stat(self._remote(path))
        except (IOError, paramiko.SSHException) as ex:
            raise self._wrap(ex, path) from ex
        if st.st_size is None:
            raise SizeUnavailable(path)
        return st.st_size

    def open_stream(self, path, chunk_size=DEF_STREAM_CHUNK):
        size = self.get_size(path)
        try:
            fd = self.sftp.open(self._remote(path), 'rb')
        except (IOError, paramiko.SSHException) as ex:
            raise self._wrap(ex, path) from ex

        def chunks():
            try:
                fd.prefetch(size)
                while True:
                    data = fd.read(chunk_size)
                    if not data:
                        break
                    yield data
            except (IOError, paramiko.SSHException) as ex:
                raise self._wrap(ex, path) from ex
            finally:
                fd.close()

        return (size, StreamChunks(chunks(), fd))
