import unittest as test

from unistore.storage.cache import ListingCache
from unistore.storage.models import DirectoryListing, ListOptions

class FakeClock:
    def __init__(self):
        self.now = 1000.0
    def __call__(self):
        return self.now

class TestListingCache(test.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = ListingCache({ "ttl": 60, "max_entries": 3 }, self.clock)

    def test_ctor(self):
        cache = ListingCache()
        self.assertEqual(cache.ttl, 300)
        self.assertEqual(cache.max_entries, 100)
        self.assertEqual(len(cache), 0)

    def test_key(self):
        self.assertEqual(ListingCache.make_key("conn", "/docs/"), ("conn", "docs", None))
        opts = ListOptions(page_size=10)
        self.assertEqual(ListingCache.make_key("conn", "docs", opts),
                         ("conn", "docs", opts.cache_key()))

    def test_expire(self):
        key = ListingCache.make_key("conn", "docs")
        listing = DirectoryListing([], "docs")
        self.cache.put(key, listing)
        self.assertIs(self.cache.get(key), listing)

        self.clock.now += 59
        self.assertIs(self.cache.get(key), listing)
        self.clock.now += 2
        self.assertIsNone(self.cache.get(key))
        self.assertEqual(len(self.cache), 0)

    def test_evict(self):
        keys = [ListingCache.make_key("conn", p) for p in "abcd"]
        for k in keys[:3]:
            self.cache.put(k, DirectoryListing([], k[1]))
        self.cache.get(keys[0])            # a is now most recently used
        self.cache.put(keys[3], DirectoryListing([], "d"))
        self.assertEqual(len(self.cache), 3)
        self.assertIsNotNone(self.cache.get(keys[0]))
        self.assertIsNone(self.cache.get(keys[1]))
        self.assertIsNotNone(self.cache.get(keys[3]))

    def test_invalidate(self):
        self.cache.put(ListingCache.make_key("c1", "a"), DirectoryListing([], "a"))
        self.cache.put(ListingCache.make_key("c1", "b"), DirectoryListing([], "b"))
        self.cache.put(ListingCache.make_key("c2", "a"), DirectoryListing([], "a"))

        self.cache.invalidate("c1", "/a/")
        self.assertEqual(len(self.cache), 2)
        self.assertIsNone(self.cache.get(ListingCache.make_key("c1", "a")))

        self.cache.invalidate("c1")
        self.assertEqual(len(self.cache), 1)
        self.assertIsNotNone(self.cache.get(ListingCache.make_key("c2", "a")))

        self.cache.clear()
        self.assertEqual(len(self.cache), 0)


if __name__ == '__main__':
    test.main()
