"""
The storage driver for a directory tree on the local filesystem.
"""
import os
from datetime import datetime, timezone
from mimetypes import guess_type

from ..models import FileEntry, EntryKind, DirectoryListing, ListOptions
from ..exceptions import *
from .base import StorageBackend

DEF_SEARCH_LIMIT = 500

def _mtime(st):
    return datetime.fromtimestamp(st.st_mtime, timezone.utc)

class LocalBackend(StorageBackend):
    """
    a driver for files under a root directory on the local filesystem.  Paths are relative to
    the root; a path that would resolve outside of the root is treated as not found.
    """

    @property
    def root(self):
        return self.conn.get('root_path')

    def _abspath(self, path):
        root = os.path.realpath(self.root)
        full = os.path.realpath(os.path.join(root, path.lstrip('/')))
        if full != root and not full.startswith(root.rstrip(os.sep) + os.sep):
            raise StorageResourceNotFound(path, "Path is outside of the root directory: "+path)
        return full

    def _wrap_oserror(self, ex, path):
        if isinstance(ex, FileNotFoundError):
            return StorageResourceNotFound(path)
        if isinstance(ex, PermissionError):
            return StorageUserUnauthorized(path, "Permission denied: "+path, code=403)
        return StorageCommError(f"{path}: {str(ex)}", path, ex)

    def connect(self):
        if not os.path.isdir(self.root):
            raise StorageResourceNotFound(self.root, "Local root directory not found: "+self.root)
        if not os.access(self.root, os.R_OK | os.X_OK):
            raise StorageUserUnauthorized(self.root, "Local root directory not readable: "+self.root)

    def _entry_for(self, relpath, dirent):
        st = dirent.stat()
        if dirent.is_dir():
            return FileEntry(relpath, EntryKind.DIRECTORY, modified=_mtime(st))
        return FileEntry(relpath, EntryKind.FILE, size=st.st_size, modified=_mtime(st),
                         mime=guess_type(dirent.name)[0])

    def list_directory(self, path, options: ListOptions=None):
        full = self._abspath(path)
        base = path.strip('/')
        entries = []
        try:
            with os.scandir(full) as it:
                for dirent in it:
                    if options and options.prefix and not dirent.name.startswith(options.prefix):
                        continue
                    relpath = f"{base}/{dirent.name}" if base else dirent.name
                    try:
                        entries.append(self._entry_for(relpath, dirent))
                    except OSError as ex:
                        # e.g. a dangling symbolic link
                        self.log.debug("Skipping unreadable entry %s: %s", relpath, str(ex))
        except OSError as ex:
            raise self._wrap_oserror(ex, path) from ex

        entries.sort(key=lambda e: e.name)
        total = len(entries)
        if options and options.page_size:
            offset = int(options.marker or 0)
            end = offset + options.page_size
            nxt = str(end) if end < total else None
            return DirectoryListing(entries[offset:end], path, has_more=bool(nxt), next_marker=nxt,
                                    total_count=total)
        return DirectoryListing(entries, path, total_count=total)

    def read_range(self, path, start=None, length=None):
        full = self._abspath(path)
        try:
            with open(full, 'rb') as fd:
                if start is None:
                    return fd.read()
                fd.seek(start)
                return fd.read(length) if length is not None else fd.read()
        except OSError as ex:
            raise self._wrap_oserror(ex, path) from ex

    def get_size(self, path):
        try:
            return os.stat(self._abspath(path)).st_size
        except OSError as ex:
            raise self._wrap_oserror(ex, path) from ex

    def search(self, term, options: ListOptions=None):
        """
        return the files and directories under the root whose names contain the given term
        (ignoring case)
        """
        limit = (options.page_size if options and options.page_size else DEF_SEARCH_LIMIT)
        term = term.lower()
        root = os.path.realpath(self.root)
        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            rel = os.path.relpath(dirpath, root)
            rel = '' if rel == '.' else rel.replace(os.sep, '/')
            for name in dirnames + sorted(filenames):
                if term not in name.lower():
                    continue
                relpath = f"{rel}/{name}" if rel else name
                try:
                    st = os.stat(os.path.join(dirpath, name))
                except OSError:
                    continue
                if name in dirnames:
                    found.append(FileEntry(relpath, EntryKind.DIRECTORY, modified=_mtime(st)))
                else:
                    found.append(FileEntry(relpath, EntryKind.FILE, size=st.st_size, modified=_mtime(st)))
                if len(found) >= limit:
                    return DirectoryListing(found, '', has_more=True)
        return DirectoryListing(found, '', total_count=len(found))
