"""
Progressive loading of file content for viewing.

A :py:class:`StreamingContentLoader` decides, when a file is opened, whether to read it whole or
progressively.  Files larger than the configured initial-load threshold are "large":  only the
first chunk is read, and more is appended on request (:py:meth:`~StreamingContentLoader.load_more`).
A caller may also jump to a percentage of the way through a large file; the loaded content is
then replaced by a chunk read from that offset.

Line numbers for content loaded from the middle of a large file are *estimates*:  they are
computed from the byte offset assuming a fixed average number of bytes per line, since counting
the actual lines would require reading everything before the offset.  The
:py:attr:`~StreamingContentLoader.line_numbers_approximate` flag tells callers when the numbering
is estimated.
"""
import logging
from collections.abc import Mapping

from unistore.base.config import merge_config
from unistore.storage.client import StorageClient
from unistore.storage.exceptions import SizeUnavailable

DEF_CONFIG = {
    "chunk_size": 1024 * 1024,
    "max_initial_load": 1024 * 1024,
    "avg_bytes_per_line": 50,
    "navigation_window": 64 * 1024,
}

def estimate_line(offset: int, avg_bytes_per_line: int=DEF_CONFIG['avg_bytes_per_line']) -> int:
    """
    estimate the (1-based) number of the line containing a byte offset, assuming lines of a
    fixed average length
    """
    return max(1, offset // max(1, avg_bytes_per_line) + 1)

class ReadCursor:
    """
    the reading state of an open file.

    :ivar int position:  the absolute offset of the first byte of the loaded content
    :ivar int loaded_bytes:  the number of bytes currently loaded, beginning at ``position``
    :ivar int chunks_loaded:  the number of reads that produced the loaded content
    """

    def __init__(self, position: int=0):
        self.reset(position)

    def reset(self, position: int=0):
        self.position = position
        self.loaded_bytes = 0
        self.chunks_loaded = 0

    def advance(self, nbytes: int):
        """
        record a successful read of ``nbytes`` bytes appended to the loaded content
        """
        self.loaded_bytes += nbytes
        self.chunks_loaded += 1

    @property
    def next_offset(self) -> int:
        """
        the offset of the first byte not yet loaded
        """
        return self.position + self.loaded_bytes

    def __repr__(self):
        return "ReadCursor(position=%d, loaded=%d, chunks=%d)" % \
               (self.position, self.loaded_bytes, self.chunks_loaded)


class StreamingContentLoader:
    """
    the loader for one file opened for viewing.  A loader is not safe for concurrent use:  the
    caller must not request more content while a previous request is still in progress.

    This class supports the following configuration parameters:

    ``chunk_size``
        (int) _optional_.  the number of bytes read by each :py:meth:`load_more` (default: 1 MiB)
    ``max_initial_load``
        (int) _optional_.  files larger than this many bytes are loaded progressively (default: 1 MiB)
    ``avg_bytes_per_line``
        (int) _optional_.  the assumed average line length used to estimate line numbers (default: 50)
    ``navigation_window``
        (int) _optional_.  when re-centering on an offset, half of this many bytes before it are
        loaded, and twice this many bytes in all (default: 64 KiB)

    :param StorageClient client:  the connected client to read through
    :param str path:    the path to the file
    :param dict config: the ``streaming`` configuration (see above)
    :param Logger log:  the Logger to use for messages
    """

    def __init__(self, client: StorageClient, path: str, config: Mapping=None, log: logging.Logger=None):
        if not log:
            log = logging.getLogger("unistore.viewer.loader")
        self.log = log
        self.client = client
        self.path = path
        self.cfg = merge_config(config, DEF_CONFIG)
        self.chunk_size = int(self.cfg['chunk_size'])
        self.max_initial_load = int(self.cfg['max_initial_load'])
        self.avg_bytes_per_line = int(self.cfg['avg_bytes_per_line'])

        self.cursor = None
        self.total_size = None
        self.is_large = False
        self.encoding = None
        self.content = ''
        self.start_line = 1
        self.line_numbers_approximate = False

    @property
    def is_open(self) -> bool:
        return self.cursor is not None

    @property
    def has_more(self) -> bool:
        """
        True if there is content beyond what is loaded
        """
        return self.is_open and self.is_large and self.cursor.next_offset < self.total_size

    @property
    def percent_loaded_through(self) -> float:
        """
        the position of the end of the loaded content as a percentage of the file size
        """
        if not self.is_open or not self.total_size:
            return 100.0
        return 100.0 * self.cursor.next_offset / self.total_size

    def open(self) -> str:
        """
        open the file, loading it whole or, if it is large, loading its first chunk
        :return:  the loaded text
        """
        try:
            self.total_size = self.client.get_file_size(self.path)
        except SizeUnavailable as ex:
            self.log.warning("%s; reading the whole file", str(ex))
            self.total_size = None

        self.cursor = ReadCursor(0)
        self.start_line = 1
        self.line_numbers_approximate = False
        self.is_large = self.total_size is not None and self.total_size > self.max_initial_load

        if self.is_large:
            self.log.debug("%s is large (%d bytes); loading first %d bytes", self.path,
                           self.total_size, self.chunk_size)
            fc = self.client.get_file_content(self.path, 0, min(self.chunk_size, self.total_size),
                                              total_size=self.total_size)
        else:
            fc = self.client.get_file_content(self.path, total_size=self.total_size)
            if self.total_size is None:
                self.total_size = fc.size

        self.encoding = fc.encoding
        self.content = fc.content
        self.cursor.advance(fc.size)
        return self.content

    def _require_open(self):
        if not self.is_open:
            raise RuntimeError("StreamingContentLoader: file not open: "+self.path)

    def load_more(self) -> str:
        """
        read the next chunk of a large file and append it to the loaded content.  Nothing is
        read if the whole file is already loaded.
        :return:  the text that was appended (empty if there was nothing more)
        """
        self._require_open()
        if not self.has_more:
            return ''
        start = self.cursor.next_offset
        length = min(self.chunk_size, self.total_size - start)
        fc = self.client.get_file_content(self.path, start, length, total_size=self.total_size)
        if fc.size == 0:
            # the file shrank since it was opened
            self.total_size = start
            return ''
        self.content += fc.content
        self.cursor.advance(fc.size)
        return fc.content

    def seek(self, offset: int, length: int=None) -> str:
        """
        discard the loaded content and load ``length`` bytes (default: one chunk) beginning at the
        given offset.  The starting line number is re-estimated.
        :return:  the loaded text
        """
        self._require_open()
        offset = max(0, min(offset, self.total_size))
        if length is None:
            length = self.chunk_size
        length = min(length, self.total_size - offset)

        self.cursor.reset(offset)
        self.content = ''
        if length > 0:
            fc = self.client.get_file_content(self.path, offset, length, total_size=self.total_size)
            self.content = fc.content
            self.cursor.advance(fc.size)

        self.start_line = estimate_line(offset, self.avg_bytes_per_line)
        self.line_numbers_approximate = offset > 0
        return self.content

    def jump_to_percentage(self, percentage: float) -> str:
        """
        replace the loaded content with one chunk read from the given percentage of the way
        through a large file.  For a file that is not large, the whole file is already loaded and
        nothing changes.
        :return:  the loaded text
        """
        self._require_open()
        if not self.is_large:
            return self.content
        percentage = max(0.0, min(100.0, float(percentage)))
        offset = int(self.total_size * percentage // 100)
        self.log.debug("Jumping to %.1f%% (offset %d) of %s", percentage, offset, self.path)
        return self.seek(offset)

    def center_on(self, offset: int) -> str:
        """
        reload a window of content around the given offset:  ``2 * navigation_window`` bytes
        beginning ``navigation_window / 2`` bytes before it
        """
        window = int(self.cfg['navigation_window'])
        return self.seek(max(0, offset - window // 2), window * 2)

    def close(self):
        """
        discard the loaded content and the read cursor
        """
        self.cursor = None
        self.content = ''
