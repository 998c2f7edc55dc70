"""
The storage driver for SMB (Windows/Samba) shares, built on the ``smbclient`` interface of
smbprotocol.
"""
import logging
from datetime import datetime, timezone

import smbclient
from smbprotocol.exceptions import SMBException, SMBAuthenticationError

from ..models import FileEntry, EntryKind, DirectoryListing, ListOptions
from ..exceptions import *
from .base import StorageBackend, StreamChunks, DEF_STREAM_CHUNK

class SMBBackend(StorageBackend):
    """
    a driver for one share on an SMB server.  The connection parameters are ``url`` (the server
    host), ``share``, ``port``, ``username``, ``password``, and an optional ``domain``.
    """

    def __init__(self, conn, config=None, log: logging.Logger=None):
        super(SMBBackend, self).__init__(conn, config, log)
        self.server = conn.get('url')
        self.share = conn.get('share')
        self._registered = False

    def _unc(self, path):
        unc = f"\\\\{self.server}\\{self.share}"
        path = path.strip('/')
        if path:
            unc += "\\" + path.replace('/', '\\')
        return unc

    def _wrap(self, ex, path):
        ep = f"smb://{self.server}/{self.share}/{path.lstrip('/')}"
        if isinstance(ex, SMBAuthenticationError):
            return StorageUserUnauthorized(ep, "SMB authentication failed: "+str(ex))
        if isinstance(ex, (FileNotFoundError, NotADirectoryError)):
            return StorageResourceNotFound(ep)
        if isinstance(ex, PermissionError):
            return StorageUserUnauthorized(ep, "Permission denied: "+ep, code=403)
        return StorageCommError(f"SMB communication failure: {str(ex)}", ep, ex)

    def _username(self):
        user = self.conn.get('username')
        if user and self.conn.get('domain') and '\\' not in user:
            user = f"{self.conn.get('domain')}\\{user}"
        return user

    def connect(self):
        try:
            smbclient.register_session(self.server, username=self._username(),
                                       password=self.conn.get('password'),
                                       port=int(self.conn.get('port') or 445),
                                       connection_timeout=self.cfg.get('transport', {}).get('timeout', 30))
            self._registered = True
            smbclient.stat(self._unc(''))
        except (SMBException, OSError, ValueError) as ex:
            self.disconnect()
            raise self._wrap(ex, '') from ex
        self.log.info("Connected to SMB share \\\\%s\\%s", self.server, self.share)

    def disconnect(self):
        if self._registered:
            try:
                smbclient.delete_session(self.server, port=int(self.conn.get('port') or 445))
            except (SMBException, OSError) as ex:
                self.log.debug("Problem closing SMB session: %s", str(ex))
            self._registered = False

    def list_directory(self, path, options: ListOptions=None):
        self._check_registered()
        base = path.strip('/')
        entries = []
        try:
            for dirent in smbclient.scandir(self._unc(path)):
                if dirent.name in ('.', '..'):
                    continue
                if options and options.prefix and not dirent.name.startswith(options.prefix):
                    continue
                st = dirent.stat()
                relpath = f"{base}/{dirent.name}" if base else dirent.name
                modified = datetime.fromtimestamp(st.st_mtime, timezone.utc)
                if dirent.is_dir():
                    entries.append(FileEntry(relpath, EntryKind.DIRECTORY, modified=modified))
                else:
                    entries.append(FileEntry(relpath, EntryKind.FILE, size=st.st_size, modified=modified))
        except (SMBException, OSError) as ex:
            raise self._wrap(ex, path) from ex
        return DirectoryListing(entries, path, total_count=len(entries))

    def _check_registered(self):
        if not self._registered:
            raise NotConnected(self.conn.protocol)

    def read_range(self, path, start=None, length=None):
        self._check_registered()
        try:
            with smbclient.open_file(self._unc(path), mode='rb') as fd:
                if start is not None:
                    fd.seek(start)
                return fd.read(length) if length is not None else fd.read()
        except (SMBException, OSError) as ex:
            raise self._wrap(ex, path) from ex

    def get_size(self, path):
        self._check_registered()
        try:
            return smbclient.stat(self._unc(path)).st_size
        except (SMBException, OSError) as ex:
            raise self._wrap(ex, path) from ex

    def open_stream(self, path, chunk_size=DEF_STREAM_CHUNK):
        size = self.get_size(path)
        try:
            fd = smbclient.open_file(self._unc(path), mode='rb')
        except (SMBException, OSError) as ex:
            raise self._wrap(ex, path) from ex

        def chunks():
            try:
                while True:
                    data = fd.read(chunk_size)
                    if not data:
                        break
                    yield data
            except (SMBException, OSError) as ex:
                raise self._wrap(ex, path) from ex
            finally:
                fd.close()

        return (size, StreamChunks(chunks(), fd))
