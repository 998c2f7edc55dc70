import os, tempfile
import unittest as test
from unittest import mock
from io import StringIO

import yaml

from unistore import cli

tmpd = None
root = None

def setUpModule():
    global tmpd, root
    tmpd = tempfile.TemporaryDirectory(prefix="_test_cli.")
    root = os.path.join(tmpd.name, "store")
    os.makedirs(os.path.join(root, "logs"))
    with open(os.path.join(root, "hello.txt"), 'w') as fd:
        fd.write("Hello there\nsearch for the word needle\nbye\n")
    with open(os.path.join(root, "logs", "app.log"), 'w') as fd:
        fd.write("x" * 2000)

def tearDownModule():
    global tmpd
    if tmpd:
        tmpd.cleanup()
        tmpd = None

class TestConfigFromURL(test.TestCase):

    def test_webdav(self):
        self.assertEqual(cli.config_from_url("https://dav.example.com/files"),
                         { "type": "webdav", "url": "https://dav.example.com/files" })
        self.assertEqual(cli.config_from_url("davs://dav.example.com/files")['type'], "webdav")

    def test_local(self):
        self.assertEqual(cli.config_from_url("file:///data/stuff"),
                         { "type": "local", "root_path": "/data/stuff" })
        self.assertEqual(cli.config_from_url("file://"), { "type": "local", "root_path": "/" })

    def test_oss(self):
        self.assertEqual(cli.config_from_url("oss://bucky/some/prefix"),
                         { "type": "oss", "bucket": "bucky/some/prefix" })
        self.assertEqual(cli.config_from_url("s3://AKID@bucky"),
                         { "type": "oss", "bucket": "bucky", "username": "AKID" })

    def test_huggingface(self):
        self.assertEqual(cli.config_from_url("hf://nist"), { "type": "huggingface", "organization": "nist" })
        self.assertEqual(cli.config_from_url("hf://"), { "type": "huggingface", "organization": None })

    def test_others(self):
        self.assertEqual(cli.config_from_url("sftp://host.example.com/home"),
                         { "type": "ssh", "url": "sftp://host.example.com/home" })
        self.assertEqual(cli.config_from_url("smb://fs/share")['type'], "smb")

    def test_unrecognized(self):
        with self.assertRaises(cli.Failure) as cm:
            cli.config_from_url("goob://where")
        self.assertEqual(cm.exception.exitcode, 1)
        with self.assertRaises(cli.Failure):
            cli.config_from_url("mydata")

class TestConnectionConfig(test.TestCase):

    cfg = { "connections": [
        { "name": "mydata", "type": "local", "root_path": "/data" },
        { "name": "nas", "type": "smb", "url": "smb://fs/share", "username": "bob", "password": "pw" }
    ] }

    def test_by_name(self):
        conn = cli.connection_config("mydata", self.cfg)
        self.assertEqual(conn, { "name": "mydata", "type": "local", "root_path": "/data" })

    def test_by_url(self):
        conn = cli.connection_config("smb://fs/share", self.cfg)
        self.assertEqual(conn['name'], "nas")
        self.assertEqual(conn['username'], "bob")

    def test_override_credentials(self):
        conn = cli.connection_config("nas", self.cfg, "alice", "secret")
        self.assertEqual(conn['username'], "alice")
        self.assertEqual(conn['password'], "secret")

        conn = cli.connection_config("https://dav.example.com/", {}, "alice")
        self.assertEqual(conn, { "type": "webdav", "url": "https://dav.example.com/", "username": "alice" })

class TestMain(test.TestCase):

    def setUp(self):
        self.storage = "file://" + root

    def run_main(self, *args):
        with mock.patch('sys.stdout', new_callable=StringIO) as out:
            cli.main("unistore", ["-q"] + list(args))
        return out.getvalue()

    def test_options(self):
        parser = cli.define_options("unistore")
        opts = parser.parse_args(["-u", "bob", "ls", "hf://nist", "-s", "size", "-r", "-n", "5"])
        self.assertEqual(opts.cmd, "ls")
        self.assertEqual(opts.username, "bob")
        self.assertEqual(opts.storage, "hf://nist")
        self.assertEqual(opts.path, "")
        self.assertEqual(opts.sort_by, "size")
        self.assertTrue(opts.reverse)
        self.assertEqual(opts.page_size, 5)

    def test_no_command(self):
        with mock.patch('sys.stderr', new_callable=StringIO):
            with self.assertRaises(cli.Failure) as cm:
                cli.main("unistore", [])
        self.assertEqual(cm.exception.exitcode, 1)

    def test_ls(self):
        lines = self.run_main("ls", self.storage).splitlines()
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].startswith("d "))
        self.assertTrue(lines[0].endswith("logs/"))
        self.assertTrue(lines[1].startswith("- "))
        self.assertTrue(lines[1].endswith("hello.txt"))

        lines = self.run_main("ls", self.storage, "logs").splitlines()
        self.assertEqual(len(lines), 1)
        self.assertIn(" 2000 ", lines[0])

    def test_find(self):
        lines = self.run_main("ls", self.storage, "-F", "APP").splitlines()
        self.assertEqual(len(lines), 1)
        self.assertTrue(lines[0].endswith("app.log"))

    def test_size(self):
        self.assertEqual(self.run_main("size", self.storage, "logs/app.log").strip(), "2000")

    def test_cat(self):
        self.assertEqual(self.run_main("cat", self.storage, "hello.txt"),
                         "Hello there\nsearch for the word needle\nbye\n")
        self.assertEqual(self.run_main("cat", self.storage, "hello.txt", "--start", "6", "--length", "5"),
                         "there")

    def test_search(self):
        out = self.run_main("search", self.storage, "hello.txt", "NEEDLE")
        self.assertEqual(out, "2:21: search for the word needle\n")

    def test_get(self):
        dest = os.path.join(tmpd.name, "hello-copy.txt")
        out = self.run_main("get", self.storage, "hello.txt", "-o", dest)
        self.assertEqual(out.strip(), dest)
        with open(dest) as fd:
            self.assertEqual(fd.read(), "Hello there\nsearch for the word needle\nbye\n")
        self.assertFalse(os.path.exists(dest + ".part"))

    def test_config_file(self):
        cfgfile = os.path.join(tmpd.name, "unistore.yml")
        with open(cfgfile, 'w') as fd:
            yaml.safe_dump({ "connections": [ { "name": "mystore", "type": "local", "root_path": root } ],
                             "cache": { "ttl": 60 } }, fd)
        out = self.run_main("-c", cfgfile, "size", "mystore", "hello.txt")
        self.assertEqual(out.strip(), "43")

    def test_missing_config_file(self):
        with self.assertRaises(cli.Failure) as cm:
            self.run_main("-c", os.path.join(tmpd.name, "goob.yml"), "ls", self.storage)
        self.assertEqual(cm.exception.exitcode, 1)

    def test_connect_failure(self):
        with self.assertRaises(cli.Failure) as cm:
            self.run_main("ls", "file://" + os.path.join(tmpd.name, "goob"))
        self.assertEqual(cm.exception.exitcode, 2)

    def test_storage_failure(self):
        with self.assertRaises(cli.Failure) as cm:
            self.run_main("cat", self.storage, "goob.txt")
        self.assertEqual(cm.exception.exitcode, 3)
        self.assertTrue(str(cm.exception).startswith("cat failed: "))

    def test_unknown_storage(self):
        with self.assertRaises(cli.Failure) as cm:
            self.run_main("ls", "goob://where")
        self.assertEqual(cm.exception.exitcode, 1)


if __name__ == '__main__':
    test.main()
