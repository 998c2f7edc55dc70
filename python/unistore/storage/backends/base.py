"""
The interface that every storage backend driver implements.  A driver does the actual I/O for one
protocol; the :py:class:`~unistore.storage.client.StorageClient` facade pairs it with the
protocol's adapter and exposes a uniform API over it.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterator

from ..models import Connection, DirectoryListing, ListOptions
from ..exceptions import NotConnected

DEF_STREAM_CHUNK = 256 * 1024

class StorageBackend(ABC):
    """
    an abstract driver for one storage protocol.  Paths given to the methods are already
    preprocessed by the protocol's adapter.
    """

    def __init__(self, conn: Connection, config=None, log: logging.Logger=None):
        """
        :param Connection conn:  the connection parameters (as normalized by the adapter)
        :param dict     config:  the client configuration (the ``transport`` section applies
                                 to HTTP-based drivers)
        :param Logger      log:  the Logger to use for messages
        """
        if config is None:
            config = {}
        if not log:
            log = logging.getLogger("unistore.backend."+conn.protocol)
        self.log = log
        self.conn = conn
        self.cfg = config

    def _check_connected(self):
        if not self.conn.connected:
            raise NotConnected(self.conn.protocol)

    @abstractmethod
    def connect(self) -> None:
        """
        perform the handshake with the backend.
        :raises StorageException:  if the backend rejects the connection or cannot be reached
        """
        raise NotImplementedError()

    def disconnect(self) -> None:
        """
        release any resources held for the connection.  This is idempotent.
        """
        pass

    @abstractmethod
    def list_directory(self, path: str, options: ListOptions=None) -> DirectoryListing:
        """
        list the contents of the directory with the given path
        """
        raise NotImplementedError()

    @abstractmethod
    def read_range(self, path: str, start: int=None, length: int=None) -> bytes:
        """
        return the bytes of a file, or of the byte range of ``length`` bytes beginning at
        ``start`` if ``start`` is given.  A range extending past the end of the file is truncated.
        """
        raise NotImplementedError()

    @abstractmethod
    def get_size(self, path: str) -> int:
        """
        return the size of a file in bytes, using a metadata-only request
        :raises SizeUnavailable:  if the backend does not report a size
        """
        raise NotImplementedError()

    def open_stream(self, path: str, chunk_size: int=DEF_STREAM_CHUNK):
        """
        open a file for streamed reading, returning a tuple containing the file size (or None
        if unknown) and an iterator over the file's bytes in chunks.  The default
        implementation reads successive ranges.
        """
        size = self.get_size(path)
        return (size, self._iter_ranges(path, size, chunk_size))

    def _iter_ranges(self, path, size, chunk_size) -> Iterator[bytes]:
        pos = 0
        while pos < size:
            data = self.read_range(path, pos, min(chunk_size, size - pos))
            if not data:
                break
            pos += len(data)
            yield data

    def search(self, term: str, options: ListOptions=None) -> DirectoryListing:
        """
        search the backend for items matching a term.  Only backends whose adapter declares
        ``supports_search`` implement this.
        """
        raise NotImplementedError(f"{self.conn.protocol} backend does not support search")


class StreamChunks:
    """
    an iterator over the chunks of an open stream whose :py:meth:`close` releases the stream,
    whether or not iteration has begun.  (Closing a generator that was never started does not
    run its ``finally`` clause.)
    """

    def __init__(self, chunks: Iterator[bytes], stream):
        self._chunks = chunks
        self._stream = stream

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        return next(self._chunks)

    def close(self):
        try:
            self._chunks.close()
        finally:
            self._stream.close()
