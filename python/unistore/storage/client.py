"""
The unified storage client:  the single facade through which all other code browses and reads
files, regardless of the backend protocol.

A :py:class:`StorageClient` holds at most one live connection.  On :py:meth:`~StorageClient.connect`
it selects the protocol's adapter (see :py:mod:`unistore.storage.adapters`) and driver (see
:py:mod:`unistore.storage.backends`); every subsequent operation passes paths through the
adapter's preprocessing before handing them to the driver, so protocol quirks are applied in
exactly one place.
"""
import logging
from collections.abc import Mapping

from unistore.base.config import merge_config
from unistore.viewer.encoding import detect_encoding, decode, sample_size_for
from .adapters import get_adapter, StorageAdapter
from .backends import get_backend_class
from .cache import ListingCache
from .download import DownloadManager, ProgressSink
from .exceptions import *
from .models import Connection, DirectoryListing, ListOptions, FileContent, SortOptions, basename

DEF_CONFIG = {
    "transport": { "timeout": 30, "retries": 0 },
    "download": { "buffer_size": 256 * 1024 },
}

class StorageClient:
    """
    the unified client for one storage connection at a time.

    :param dict config:  the client configuration, including ``transport`` and ``download`` sections
    :param ListingCache cache:  an externally-owned cache for directory listings; if not given,
                         listings are not cached
    :param ProgressSink progress:  the receiver of download progress events
    :param Logger log:   the Logger to use for messages
    :param backend_factory:  a function that creates the driver for a connection given the
                         protocol, the :py:class:`~unistore.storage.models.Connection`, the
                         configuration, and a Logger; the default selects the driver registered
                         for the protocol
    """

    def __init__(self, config: Mapping=None, cache: ListingCache=None, progress: ProgressSink=None,
                 log: logging.Logger=None, backend_factory=None):
        if not log:
            log = logging.getLogger("unistore.storage.client")
        self.log = log
        self.cfg = merge_config(config, DEF_CONFIG)
        self.cache = cache
        self.downloads = DownloadManager(self.cfg.get('download', {}), progress,
                                         self.log.getChild("download"))
        self._backend_factory = backend_factory or _default_backend_factory

        self.adapter = None
        self.connection = None
        self.backend = None
        self._encodings = {}

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.connected

    def _require_connection(self):
        if not self.is_connected:
            raise NotConnected(self.adapter.protocol if self.adapter else None)

    def connect(self, config: Mapping) -> bool:
        """
        connect to the storage described by the given connection configuration.  The ``type``
        property selects the protocol; the other properties depend on the protocol (``url``,
        ``username``, ``password``, ``bucket``, ``share``, ``root_path``, ...).

        Any existing connection is closed first.

        :return:  True if the connection succeeded, False if the backend rejected it or could
                  not be reached
        :raises ConfigurationException:  if the configuration names an unsupported type or lacks
                  a required parameter; this is raised before any network access.
        """
        adapter = get_adapter(config.get('type') or config.get('protocol'))
        params = adapter.preprocess_connection(config)
        name = config.get('name') or adapter.generate_connection_name(params)

        self.disconnect()
        conn = Connection(adapter.protocol, params.get('url'), params, name)
        backend = self._backend_factory(adapter.protocol, conn, self.cfg, self.log.getChild(adapter.protocol))
        try:
            backend.connect()
        except StorageException as ex:
            self.log.warning("Failed to connect to %s: %s", name, str(ex))
            backend.disconnect()
            return False

        conn.mark_connected()
        self.adapter = adapter
        self.connection = conn
        self.backend = backend
        self._encodings = {}
        adapter.post_connect(conn)
        self.log.info("Connected to %s", name)
        return True

    def disconnect(self) -> None:
        """
        close the current connection, if any, and discard all state derived from it.  This is
        idempotent.
        """
        if self.connection is None:
            return
        conn = self.connection
        self.downloads.cancel_all()
        try:
            self.backend.disconnect()
        except StorageException as ex:
            self.log.warning("Problem disconnecting from %s: %s", conn.name, str(ex))
        conn.mark_disconnected()
        if self.cache is not None:
            self.cache.invalidate(conn.identity)
        self.connection = None
        self.backend = None
        self.adapter = None
        self._encodings = {}
        self.log.info("Disconnected from %s", conn.name)

    @property
    def display_name(self) -> str:
        return self.connection.name if self.connection else None

    @property
    def supports_search(self) -> bool:
        return bool(self.adapter and self.adapter.supports_search)

    @property
    def default_page_size(self) -> int:
        return self.adapter.default_page_size if self.adapter else None

    @property
    def default_sort_options(self) -> SortOptions:
        return self.adapter.default_sort if self.adapter else StorageAdapter.default_sort

    @property
    def capability(self):
        """
        the listing capability record for the connection, or None if the backend does not
        detect listing capabilities
        """
        return getattr(self.backend, "capability", None)

    def preprocess_path(self, path: str) -> str:
        self._require_connection()
        return self.adapter.preprocess_path(path or '', self.connection)

    def to_protocol_url(self, path: str) -> str:
        """
        return the protocol URL (e.g. ``oss://bucket/key``) for an item in the current storage
        """
        self._require_connection()
        return self.adapter.build_url(self.preprocess_path(path), self.connection)

    def generate_connection_name(self, config: Mapping) -> str:
        return get_adapter(config.get('type') or config.get('protocol')).generate_connection_name(config)

    def get_root_display_info(self):
        self._require_connection()
        return self.adapter.get_root_display_info(self.connection)

    def list_directory(self, path: str='', options: ListOptions=None) -> DirectoryListing:
        """
        list the contents of a directory.  Sort and paging hints in ``options`` are passed to the
        backend, which may ignore them; use :py:func:`~unistore.storage.models.sort_entries` to
        sort the result if the order matters.

        :raises NotConnected:  if there is no active connection
        """
        self._require_connection()
        if options is None:
            options = ListOptions(page_size=self.adapter.default_page_size)
        p = self.preprocess_path(path)

        key = None
        if self.cache is not None:
            key = ListingCache.make_key(self.connection.identity, p, options)
            cached = self.cache.get(key)
            if cached is not None:
                self.log.debug("Using cached listing for /%s", p)
                return cached

        listing = self.backend.list_directory(p, options)
        if key is not None:
            self.cache.put(key, listing)
        return listing

    def search_directory(self, term: str, options: ListOptions=None) -> DirectoryListing:
        """
        search the storage for items matching a term; only available when :py:attr:`supports_search`
        is True
        """
        self._require_connection()
        if not self.supports_search:
            raise StorageException(f"{self.adapter.protocol} storage does not support search")
        return self.backend.search(term, options)

    def _read(self, p, start=None, length=None):
        if start is None:
            return self.backend.read_range(p)
        try:
            return self.backend.read_range(p, start, length)
        except (StorageResourceNotFound, StorageUserUnauthorized, StorageCommError):
            raise
        except StorageException as ex:
            self.log.warning("Ranged read of /%s failed (%s); falling back to a full read", p, str(ex))
            data = self.backend.read_range(p)
            return data[start:start + length] if length is not None else data[start:]

    def detect_encoding(self, path: str, total_size: int=None) -> str:
        """
        return the character encoding of a file, detecting it from a leading sample on first use
        and reusing it thereafter
        """
        p = self.preprocess_path(path)
        if p not in self._encodings:
            if total_size is None:
                total_size = self.backend.get_size(p)
            size = sample_size_for(total_size)
            sample = self._read(p, 0, size) if size > 0 else b''
            self._encodings[p] = detect_encoding(sample)
            self.log.debug("Detected encoding %s for /%s", self._encodings[p], p)
        return self._encodings[p]

    def get_file_content(self, path: str, start: int=None, length: int=None,
                         total_size: int=None) -> FileContent:
        """
        read a file (or the byte range of ``length`` bytes starting at ``start``) and decode it
        as text.  If the backend cannot serve ranged reads, the whole file is read and sliced.

        :param str path:   the path to the file
        :param int start:  the offset of the first byte to read; if None, the whole file is read
        :param int length: the number of bytes to read; if None, read to the end of the file
        :param int total_size:  the size of the file, if already known
        """
        self._require_connection()
        p = self.preprocess_path(path)
        data = self._read(p, start, length)

        if p not in self._encodings and not start:
            whole = total_size if total_size is not None else (len(data) if start is None else None)
            if whole is not None and len(data) >= sample_size_for(whole):
                self._encodings[p] = detect_encoding(data[:sample_size_for(whole)])
        encoding = self.detect_encoding(path, total_size)

        if start is None and total_size is None:
            total_size = len(data)
        return FileContent(decode(data, encoding), len(data), encoding, total_size)

    def get_file_size(self, path: str) -> int:
        """
        return the size of a file in bytes using a metadata-only request
        :raises SizeUnavailable:  if the backend does not report a size
        """
        self._require_connection()
        return self.backend.get_size(self.preprocess_path(path))

    def get_file_as_blob(self, path: str) -> bytes:
        """
        return the full contents of a file as bytes
        """
        self._require_connection()
        return self._read(self.preprocess_path(path))

    def download_file_with_progress(self, path: str, filename: str=None, savepath: str=None) -> str:
        """
        download a file to the local filesystem, reporting progress to the client's
        :py:class:`~unistore.storage.download.ProgressSink`.  The download can be stopped with
        :py:meth:`cancel_download`.

        :param str path:      the path to the file in the storage
        :param str filename:  the name that identifies the download (default: the file's name)
        :param str savepath:  the local path to save to (default: the name in the download directory)
        :return:  the local path of the saved file
        :raises DownloadCancelled:  if the download was cancelled
        """
        self._require_connection()
        p = self.preprocess_path(path)
        if not filename:
            filename = basename(p)
        total, chunks = self.backend.open_stream(p, self.downloads.buffer_size)
        return self.downloads.download(chunks, filename, savepath, total)

    def cancel_download(self, filename: str) -> bool:
        return self.downloads.cancel(filename)


def _default_backend_factory(protocol, conn, config, log):
    return get_backend_class(protocol)(conn, config, log)
