"""
Progress-tracked, cancellable downloads.

A :py:class:`DownloadManager` copies a stream of bytes from a backend to a local file, reporting
progress to a :py:class:`ProgressSink` and checking between chunks whether the download has been
cancelled.  Data is written to a temporary ``.part`` file that is renamed into place only when the
download completes, so a cancelled or failed download never leaves a truncated file at the
destination.
"""
import os, time, threading, logging
from abc import ABC, abstractmethod
from typing import Iterable

from .exceptions import DownloadCancelled, StorageException

PART_SUFFIX = ".part"

class ProgressSink(ABC):
    """
    a receiver of download progress events, each keyed by the name of the file being downloaded
    """

    @abstractmethod
    def started(self, filename: str, total: int=None):
        raise NotImplementedError()

    @abstractmethod
    def progress(self, filename: str, downloaded: int, total: int=None):
        raise NotImplementedError()

    @abstractmethod
    def completed(self, filename: str, savepath: str):
        raise NotImplementedError()

    @abstractmethod
    def error(self, filename: str, message: str):
        raise NotImplementedError()

    def cancelled(self, filename: str):
        """
        called when a download is cancelled at the caller's request.  The default does nothing.
        """
        pass

class NullProgressSink(ProgressSink):
    """a sink that ignores all events"""
    def started(self, filename, total=None):  pass
    def progress(self, filename, downloaded, total=None):  pass
    def completed(self, filename, savepath):  pass
    def error(self, filename, message):  pass

class LoggingProgressSink(ProgressSink):
    """
    a sink that reports events as log messages, throttling progress messages to at most one
    per ``interval`` seconds
    """

    def __init__(self, log: logging.Logger=None, interval: float=1.0):
        if not log:
            log = logging.getLogger("unistore.download")
        self.log = log
        self.interval = interval
        self._last = {}

    def started(self, filename, total=None):
        self.log.info("Downloading %s (%s bytes)", filename, total if total is not None else "unknown")
        self._last[filename] = time.monotonic()

    def progress(self, filename, downloaded, total=None):
        now = time.monotonic()
        if now - self._last.get(filename, 0) < self.interval:
            return
        self._last[filename] = now
        if total:
            self.log.info("%s: %d of %d bytes (%.1f%%)", filename, downloaded, total,
                          100.0 * downloaded / total)
        else:
            self.log.info("%s: %d bytes", filename, downloaded)

    def completed(self, filename, savepath):
        self._last.pop(filename, None)
        self.log.info("Downloaded %s to %s", filename, savepath)

    def error(self, filename, message):
        self._last.pop(filename, None)
        self.log.error("Download of %s failed: %s", filename, message)

    def cancelled(self, filename):
        self._last.pop(filename, None)
        self.log.warning("Download of %s cancelled", filename)


class DownloadManager:
    """
    a manager for progress-tracked downloads.  Each active download is identified by its
    filename, which is used both for progress events and for cancellation.

    This class supports the following configuration parameters:

    ``buffer_size``
        (int) _optional_.  the number of bytes to read from the source at a time (default: 256 KiB)
    ``dir``
        (str) _optional_.  the directory to save files into when no save path is given
        (default: the current working directory)
    """

    def __init__(self, config=None, sink: ProgressSink=None, log: logging.Logger=None):
        if config is None:
            config = {}
        if not log:
            log = logging.getLogger("unistore.download")
        self.log = log
        self.cfg = config
        self.sink = sink or NullProgressSink()
        self.buffer_size = int(config.get('buffer_size', 256 * 1024))
        self._cancels = {}
        self._lock = threading.Lock()

    def default_savepath(self, filename: str) -> str:
        return os.path.join(self.cfg.get('dir') or os.getcwd(), os.path.basename(filename))

    def active(self):
        """
        return the names of the downloads in progress
        """
        with self._lock:
            return list(self._cancels.keys())

    def cancel(self, filename: str) -> bool:
        """
        request that the download of the named file stop.  The download stops before writing
        its next chunk.  False is returned if no such download is in progress.
        """
        with self._lock:
            ev = self._cancels.get(filename)
        if ev is None:
            return False
        self.log.info("Cancelling download of %s", filename)
        ev.set()
        return True

    def cancel_all(self) -> int:
        """
        cancel all downloads in progress, returning the number cancelled
        """
        with self._lock:
            events = list(self._cancels.values())
        for ev in events:
            ev.set()
        return len(events)

    def download(self, chunks: Iterable[bytes], filename: str, savepath: str=None, total: int=None) -> str:
        """
        write a stream of chunks to a file, reporting progress.

        :param chunks:        an iterable over the bytes of the file
        :param str filename:  the name identifying the download
        :param str savepath:  where to save the file; if not given, the file is saved under its
                              name in the configured download directory
        :param int total:     the expected number of bytes, if known
        :return:  the path to the saved file
        :raises DownloadCancelled:  if the download was cancelled
        """
        if not savepath:
            savepath = self.default_savepath(filename)
        partpath = savepath + PART_SUFFIX
        ev = threading.Event()
        with self._lock:
            busy = filename in self._cancels
            if not busy:
                self._cancels[filename] = ev
        if busy:
            _close(chunks)
            raise StorageException(f"A download of {filename} is already in progress")

        downloaded = 0
        self.sink.started(filename, total)
        try:
            with open(partpath, 'wb') as fd:
                for chunk in chunks:
                    if ev.is_set():
                        raise DownloadCancelled(filename)
                    fd.write(chunk)
                    downloaded += len(chunk)
                    self.sink.progress(filename, downloaded, total)
            if ev.is_set():
                raise DownloadCancelled(filename)
            os.replace(partpath, savepath)

        except DownloadCancelled:
            self._discard(partpath)
            self.sink.cancelled(filename)
            raise
        except (StorageException, OSError) as ex:
            self._discard(partpath)
            self.sink.error(filename, str(ex))
            raise
        finally:
            _close(chunks)
            with self._lock:
                self._cancels.pop(filename, None)

        self.sink.completed(filename, savepath)
        return savepath

    def _discard(self, partpath):
        try:
            if os.path.exists(partpath):
                os.remove(partpath)
        except OSError as ex:
            self.log.warning("Unable to remove partial download %s: %s", partpath, str(ex))

def _close(chunks):
    # stops the underlying transport read
    close = getattr(chunks, "close", None)
    if close:
        close()
