import os, tempfile
import unittest as test

from unistore.storage.backends.local import LocalBackend
from unistore.storage.backends import get_backend_class
from unistore.storage.models import Connection, ListOptions
from unistore.storage.exceptions import *

tmpd = None

def setUpModule():
    global tmpd
    tmpd = tempfile.TemporaryDirectory(prefix="_test_local.")
    root = os.path.join(tmpd.name, "root")
    os.makedirs(os.path.join(root, "reports", "2023"))
    with open(os.path.join(root, "readme.txt"), 'wb') as fd:
        fd.write(b"0123456789abcdef")
    with open(os.path.join(root, "reports", "summary.csv"), 'w') as fd:
        fd.write("a,b\n1,2\n")
    with open(os.path.join(root, "reports", "2023", "annual-report.txt"), 'w') as fd:
        fd.write("annual\n")
    with open(os.path.join(tmpd.name, "secret.txt"), 'w') as fd:
        fd.write("keep out\n")

def tearDownModule():
    global tmpd
    if tmpd:
        tmpd.cleanup()
        tmpd = None

class TestLocalBackend(test.TestCase):

    def setUp(self):
        self.root = os.path.join(tmpd.name, "root")
        self.be = LocalBackend(Connection("local", None, { "root_path": self.root }))

    def test_registered(self):
        self.assertIs(get_backend_class("local"), LocalBackend)

    def test_connect(self):
        self.be.connect()

        be = LocalBackend(Connection("local", None, { "root_path": os.path.join(self.root, "goob") }))
        with self.assertRaises(StorageResourceNotFound):
            be.connect()

    def test_list_directory(self):
        lst = self.be.list_directory("")
        self.assertEqual(lst.names(), ["readme.txt", "reports"])
        self.assertEqual(lst.total_count, 2)
        self.assertFalse(lst.has_more)
        self.assertTrue(lst.files[1].is_dir)
        self.assertEqual(lst.files[1].size, 0)
        self.assertEqual(lst.files[0].size, 16)
        self.assertEqual(lst.files[0].mime, "text/plain")

        lst = self.be.list_directory("reports")
        self.assertEqual(lst.names(), ["2023", "summary.csv"])
        self.assertEqual(lst.files[1].path, "reports/summary.csv")

        lst = self.be.list_directory("", ListOptions(prefix="rep"))
        self.assertEqual(lst.names(), ["reports"])

    def test_paging(self):
        lst = self.be.list_directory("", ListOptions(page_size=1))
        self.assertEqual(lst.names(), ["readme.txt"])
        self.assertTrue(lst.has_more)
        self.assertEqual(lst.next_marker, "1")

        lst = self.be.list_directory("", ListOptions(page_size=1, marker=lst.next_marker))
        self.assertEqual(lst.names(), ["reports"])
        self.assertFalse(lst.has_more)
        self.assertIsNone(lst.next_marker)

    def test_not_found(self):
        with self.assertRaises(StorageResourceNotFound):
            self.be.list_directory("goob")
        with self.assertRaises(StorageResourceNotFound):
            self.be.read_range("goob.txt")
        with self.assertRaises(StorageResourceNotFound):
            self.be.get_size("goob.txt")

    def test_outside_root(self):
        with self.assertRaises(StorageResourceNotFound):
            self.be.read_range("../secret.txt")
        with self.assertRaises(StorageResourceNotFound):
            self.be.list_directory("reports/../..")

    def test_read_range(self):
        self.assertEqual(self.be.read_range("readme.txt"), b"0123456789abcdef")
        self.assertEqual(self.be.read_range("/readme.txt", 10, 3), b"abc")
        self.assertEqual(self.be.read_range("readme.txt", 10), b"abcdef")
        self.assertEqual(self.be.read_range("readme.txt", 14, 10), b"ef")
        self.assertEqual(self.be.read_range("readme.txt", 100, 10), b"")

    def test_get_size(self):
        self.assertEqual(self.be.get_size("readme.txt"), 16)
        self.assertEqual(self.be.get_size("readme.txt"), len(self.be.read_range("readme.txt")))

    def test_open_stream(self):
        size, chunks = self.be.open_stream("readme.txt", 5)
        self.assertEqual(size, 16)
        chunks = list(chunks)
        self.assertEqual(len(chunks), 4)
        self.assertEqual(b"".join(chunks), b"0123456789abcdef")

    def test_search(self):
        lst = self.be.search("REPORT")
        self.assertEqual([e.path for e in lst], ["reports", "reports/2023/annual-report.txt"])
        self.assertFalse(lst.has_more)
        self.assertTrue(lst.files[0].is_dir)

        lst = self.be.search("report", ListOptions(page_size=1))
        self.assertEqual(len(lst), 1)
        self.assertTrue(lst.has_more)


if __name__ == '__main__':
    test.main()
