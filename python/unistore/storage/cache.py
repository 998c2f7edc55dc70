"""
A cache for directory listings with time-based expiration and a bound on its size.

The cache is owned by the caller and injected into a
:py:class:`~unistore.storage.client.StorageClient`; the client consults it before listing a
directory and clears it when it disconnects.  Listings are keyed by connection identity
(see :py:attr:`~unistore.storage.models.Connection.identity`), path, and listing options.
"""
import time, threading
from collections import OrderedDict

DEF_TTL = 300
DEF_MAX_ENTRIES = 100

class ListingCache:
    """
    a least-recently-used cache of directory listings whose entries expire after a fixed time.

    This class supports the following configuration parameters:

    ``ttl``
        (int) _optional_.  the number of seconds a listing remains valid (default: 300)
    ``max_entries``
        (int) _optional_.  the maximum number of listings held; the least recently used listing
        is evicted when a new one would exceed this (default: 100)
    """

    def __init__(self, config=None, clock=time.monotonic):
        if config is None:
            config = {}
        self.ttl = float(config.get('ttl', DEF_TTL))
        self.max_entries = int(config.get('max_entries', DEF_MAX_ENTRIES))
        self._clock = clock
        self._data = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def make_key(connid, path, options=None):
        return (connid, path.strip('/'), options.cache_key() if options else None)

    def get(self, key):
        """
        return the listing stored under the given key, or None if there is none or it has expired
        """
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            stored, value = item
            if self._clock() - stored > self.ttl:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return value

    def put(self, key, value):
        with self._lock:
            self._data[key] = (self._clock(), value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def invalidate(self, connid=None, path=None):
        """
        remove cached listings:  all of them if no arguments are given, those for a connection
        if only ``connid`` is given, or those for one path of a connection.
        """
        with self._lock:
            if connid is None:
                self._data.clear()
                return
            norm = path.strip('/') if path is not None else None
            for key in list(self._data.keys()):
                if key[0] == connid and (norm is None or key[1] == norm):
                    del self._data[key]

    def clear(self):
        self.invalidate()

    def __len__(self):
        return len(self._data)
