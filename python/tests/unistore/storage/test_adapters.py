import unittest as test

from unistore.storage import adapters
from unistore.storage.adapters import get_adapter
from unistore.storage.models import Connection, SortOptions
from unistore.base.config import ConfigurationException

def connect_with(adapter, config):
    params = adapter.preprocess_connection(config)
    return Connection(adapter.protocol, params.get('url'), params)

class TestGetAdapter(test.TestCase):

    def test_known(self):
        self.assertTrue(isinstance(get_adapter("webdav"), adapters.WebDAVAdapter))
        self.assertTrue(isinstance(get_adapter("OSS"), adapters.OSSAdapter))
        self.assertTrue(isinstance(get_adapter("s3"), adapters.OSSAdapter))
        self.assertTrue(isinstance(get_adapter("sftp"), adapters.SSHAdapter))
        self.assertTrue(isinstance(get_adapter("huggingface"), adapters.HuggingFaceAdapter))
        self.assertIn("smb", adapters.adapter_types())
        self.assertIn("local", adapters.adapter_types())

    def test_unknown(self):
        with self.assertRaises(ConfigurationException) as cm:
            get_adapter("gopher")
        self.assertEqual(cm.exception.param, "type")
        with self.assertRaises(ConfigurationException):
            get_adapter(None)

    def test_capabilities(self):
        self.assertFalse(get_adapter("webdav").supports_search)
        self.assertTrue(get_adapter("local").supports_search)
        hf = get_adapter("huggingface")
        self.assertTrue(hf.supports_search)
        self.assertTrue(hf.supports_custom_root_display)
        self.assertEqual(hf.default_page_size, 20)
        self.assertEqual(hf.default_sort, SortOptions("size", "desc"))
        self.assertEqual(get_adapter("oss").default_page_size, 100)
        self.assertEqual(get_adapter("smb").default_sort, SortOptions("name", "asc"))

class TestWebDAVAdapter(test.TestCase):

    def setUp(self):
        self.adapter = adapters.WebDAVAdapter()

    def test_preprocess_connection(self):
        params = self.adapter.preprocess_connection({ "url": "webdavs://dav.example.com/remote.php/dav" })
        self.assertEqual(params['url'], "https://dav.example.com/remote.php/dav")
        params = self.adapter.preprocess_connection({ "url": "dav://dav.example.com/" })
        self.assertEqual(params['url'], "http://dav.example.com/")

        with self.assertRaises(ConfigurationException) as cm:
            self.adapter.preprocess_connection({ "username": "bob" })
        self.assertEqual(cm.exception.param, "url")
        with self.assertRaises(ConfigurationException):
            self.adapter.preprocess_connection({ "url": "ftp://files.example.com/" })

    def test_build_url(self):
        conn = connect_with(self.adapter, { "url": "https://dav.example.com/remote.php/dav" })
        self.assertEqual(self.adapter.build_url("docs/a.txt", conn),
                         "webdavs://dav.example.com/remote.php/dav/docs/a.txt")
        conn = connect_with(self.adapter, { "url": "http://dav.example.com" })
        self.assertEqual(self.adapter.build_url("", conn), "webdav://dav.example.com/")

    def test_name(self):
        self.assertEqual(self.adapter.generate_connection_name({ "url": "https://dav.example.com/x" }),
                         "WebDAV (dav.example.com)")

    def test_preprocess_path(self):
        conn = connect_with(self.adapter, { "url": "https://dav.example.com/" })
        self.assertEqual(self.adapter.preprocess_path("  /docs/a.txt ", conn), "docs/a.txt")
        self.assertEqual(self.adapter.preprocess_path(None, conn), "")

class TestOSSAdapter(test.TestCase):

    def setUp(self):
        self.adapter = adapters.OSSAdapter()

    def test_required(self):
        with self.assertRaises(ConfigurationException) as cm:
            self.adapter.preprocess_connection({ "username": "ak", "password": "sk" })
        self.assertEqual(cm.exception.param, "bucket")
        with self.assertRaises(ConfigurationException) as cm:
            self.adapter.preprocess_connection({ "bucket": "b" })
        self.assertEqual(cm.exception.param, "username")

    def test_aliyun(self):
        params = self.adapter.preprocess_connection({
            "username": "ak", "password": "sk", "bucket": "mybucket/some/prefix/",
            "url": "https://oss-cn-shanghai.aliyuncs.com"
        })
        self.assertEqual(params['bucket'], "mybucket")
        self.assertEqual(params['path_prefix'], "some/prefix/")
        self.assertEqual(params['host'], "oss-cn-shanghai.aliyuncs.com")
        self.assertEqual(params['region'], "cn-hangzhou")
        self.assertEqual(params['endpoint'], "https://oss-cn-shanghai.aliyuncs.com")
        self.assertEqual(params['url'], "oss://mybucket")

        conn = Connection("oss", params['url'], params)
        self.assertEqual(self.adapter.object_key("/a/b.txt", conn), "some/prefix/a/b.txt")
        self.assertEqual(self.adapter.build_url("a/b.txt", conn), "oss://mybucket/some/prefix/a/b.txt")

    def test_aws(self):
        params = self.adapter.preprocess_connection({
            "username": "ak", "password": "sk", "bucket": "b", "url": "s3.amazonaws.com"
        })
        self.assertEqual(params['region'], "us-east-1")
        self.assertEqual(params['endpoint'], "https://s3.amazonaws.com")
        self.assertEqual(params['path_prefix'], "")

        params = self.adapter.preprocess_connection({
            "username": "ak", "password": "sk", "bucket": "b", "url": "s3.amazonaws.com",
            "region": "eu-west-1"
        })
        self.assertEqual(params['endpoint'], "https://s3.eu-west-1.amazonaws.com")

    def test_other_hosts(self):
        params = self.adapter.preprocess_connection({
            "username": "ak", "password": "sk", "bucket": "b", "url": "cos.ap-beijing.myqcloud.com"
        })
        self.assertEqual(params['region'], "ap-beijing")
        self.assertEqual(params['endpoint'], "https://cos.ap-beijing.myqcloud.com")

        params = self.adapter.preprocess_connection({
            "username": "ak", "password": "sk", "bucket": "b", "endpoint": "http://minio.local:9000"
        })
        self.assertEqual(params['region'], "us-east-1")
        self.assertEqual(params['endpoint'], "http://minio.local:9000")

    def test_name(self):
        self.assertEqual(self.adapter.generate_connection_name({ "bucket": "mybucket/pre" }),
                         "OSS (mybucket)")

class TestLocalAdapter(test.TestCase):

    def setUp(self):
        self.adapter = adapters.LocalAdapter()

    def test_preprocess_connection(self):
        params = self.adapter.preprocess_connection({ "root_path": "/data/files/" })
        self.assertEqual(params['root_path'], "/data/files")
        self.assertEqual(params['url'], "local:///data/files")

        params = self.adapter.preprocess_connection({ "url": "file:///tmp/x" })
        self.assertEqual(params['root_path'], "/tmp/x")

        with self.assertRaises(ConfigurationException) as cm:
            self.adapter.preprocess_connection({})
        self.assertEqual(cm.exception.param, "root_path")

    def test_preprocess_path(self):
        conn = connect_with(self.adapter, { "root_path": "/data/files" })
        self.assertEqual(self.adapter.preprocess_path("/data/files/sub/x.txt", conn), "sub/x.txt")
        self.assertEqual(self.adapter.preprocess_path("/sub/x.txt", conn), "sub/x.txt")
        self.assertEqual(self.adapter.preprocess_path("/data/files", conn), "")
        self.assertEqual(self.adapter.preprocess_path("/data/files2/x", conn), "data/files2/x")

        conn = connect_with(self.adapter, { "root_path": "/data" })
        self.assertEqual(self.adapter.preprocess_path("/data2/x", conn), "data2/x")
        self.assertEqual(self.adapter.preprocess_path("/data/x", conn), "x")
        self.assertEqual(self.adapter.build_url("sub/x.txt", conn), "local:///data/files/sub/x.txt")

    def test_name(self):
        self.assertEqual(self.adapter.generate_connection_name({ "root_path": "/data/files/" }),
                         "Local (files)")

class TestSSHAdapter(test.TestCase):

    def setUp(self):
        self.adapter = adapters.SSHAdapter()

    def test_preprocess_connection(self):
        params = self.adapter.preprocess_connection({ "url": "sftp://bob@host.example.com:2222/home/bob" })
        self.assertEqual(params['url'], "host.example.com")
        self.assertEqual(params['port'], 2222)
        self.assertEqual(params['username'], "bob")
        self.assertEqual(params['root_path'], "/home/bob")

        params = self.adapter.preprocess_connection({ "url": "host.example.com", "username": "al" })
        self.assertEqual(params['port'], 22)
        self.assertEqual(params['root_path'], "/")

        with self.assertRaises(ConfigurationException) as cm:
            self.adapter.preprocess_connection({ "url": "host.example.com" })
        self.assertEqual(cm.exception.param, "username")

    def test_build_url(self):
        conn = connect_with(self.adapter, { "url": "ssh://bob@host.example.com:2222/home/bob" })
        self.assertEqual(self.adapter.build_url("a.txt", conn), "ssh://host.example.com:2222/home/bob/a.txt")
        conn = connect_with(self.adapter, { "url": "host.example.com", "username": "al" })
        self.assertEqual(self.adapter.build_url("/a.txt", conn), "ssh://host.example.com/a.txt")

    def test_name(self):
        self.assertEqual(self.adapter.generate_connection_name({ "url": "host.example.com", "port": 2222 }),
                         "SSH (host.example.com:2222)")
        self.assertEqual(self.adapter.generate_connection_name({ "url": "ssh://host.example.com/" }),
                         "SSH (host.example.com)")

class TestSMBAdapter(test.TestCase):

    def setUp(self):
        self.adapter = adapters.SMBAdapter()

    def test_preprocess_connection(self):
        params = self.adapter.preprocess_connection({ "url": "smb://fs.example.com/shared" })
        self.assertEqual(params['url'], "fs.example.com")
        self.assertEqual(params['share'], "shared")
        self.assertEqual(params['port'], 445)

        with self.assertRaises(ConfigurationException) as cm:
            self.adapter.preprocess_connection({ "url": "fs.example.com" })
        self.assertEqual(cm.exception.param, "share")

    def test_build_url(self):
        conn = connect_with(self.adapter, { "url": "fs.example.com", "share": "/shared/" })
        self.assertEqual(self.adapter.build_url("a/b.txt", conn), "smb://fs.example.com/shared/a/b.txt")
        self.assertEqual(self.adapter.generate_connection_name(conn.params), "SMB (fs.example.com/shared)")

class TestHuggingFaceAdapter(test.TestCase):

    def setUp(self):
        self.adapter = adapters.HuggingFaceAdapter()

    def test_preprocess(self):
        conn = connect_with(self.adapter, { "organization": " openai " })
        self.assertEqual(conn.get('organization'), "openai")
        self.assertEqual(self.adapter.preprocess_path("", conn), "openai")
        self.assertEqual(self.adapter.preprocess_path("/openai:gsm8k/main", conn), "openai:gsm8k/main")

        conn = connect_with(self.adapter, {})
        self.assertIsNone(conn.get('organization'))
        self.assertEqual(self.adapter.preprocess_path("", conn), "")

    def test_split_path(self):
        self.assertEqual(self.adapter.split_path("openai:gsm8k/main/train.parquet"),
                         ("openai/gsm8k", "main/train.parquet"))
        self.assertEqual(self.adapter.split_path("openai:gsm8k"), ("openai/gsm8k", ""))
        self.assertEqual(self.adapter.split_path("openai"), (None, "openai"))

    def test_display(self):
        conn = connect_with(self.adapter, { "organization": "openai" })
        self.assertEqual(self.adapter.generate_connection_name(conn.params), "HF (openai)")
        self.assertEqual(self.adapter.get_root_display_info(conn)['name'], "openai")
        self.assertEqual(self.adapter.generate_connection_name({}), "Hugging Face Hub")
        self.assertEqual(self.adapter.build_url("openai:gsm8k/a b.txt", conn),
                         "huggingface://openai:gsm8k/a%20b.txt")


if __name__ == '__main__':
    test.main()
