import json
from datetime import datetime, timezone
import unittest as test

from unistore.storage.webdav import parser
from unistore.storage.models import EntryKind
from unistore.storage.exceptions import ListingParseError

qualified = """<?xml version="1.0" encoding="utf-8"?>
<multistatus xmlns="DAV:">
  <response>
    <href>/docs/</href>
    <propstat><prop>
      <resourcetype><collection/></resourcetype>
      <getlastmodified>Tue, 02 Jan 2024 10:00:00 GMT</getlastmodified>
    </prop></propstat>
  </response>
  <response>
    <href>/docs/a.txt</href>
    <propstat><prop>
      <resourcetype/>
      <getcontentlength>1234</getcontentlength>
      <getlastmodified>Wed, 03 Jan 2024 11:30:00 GMT</getlastmodified>
    </prop></propstat>
  </response>
  <response>
    <href>/docs/b/</href>
    <propstat><prop>
      <resourcetype><collection/></resourcetype>
    </prop></propstat>
  </response>
</multistatus>
"""

prefixed = """<?xml version="1.0" encoding="utf-8"?>
<D:multistatus xmlns:D="DAV:">
  <D:response>
    <D:href>/docs/</D:href>
    <D:propstat><D:prop>
      <D:resourcetype><D:collection/></D:resourcetype>
    </D:prop></D:propstat>
  </D:response>
  <D:response>
    <D:href>/docs/a.txt</D:href>
    <D:propstat><D:prop>
      <D:resourcetype/>
      <D:getcontentlength>1234</D:getcontentlength>
      <D:getlastmodified>Wed, 03 Jan 2024 11:30:00 GMT</D:getlastmodified>
    </D:prop></D:propstat>
  </D:response>
  <D:response>
    <D:href>/docs/b/</D:href>
    <D:propstat><D:prop>
      <D:resourcetype><D:collection/></D:resourcetype>
    </D:prop></D:propstat>
  </D:response>
</D:multistatus>
"""

# the prefix is used without being declared
undeclared = prefixed.replace(' xmlns:D="DAV:"', '').replace("D:", "d:")

unqualified = qualified.replace(' xmlns="DAV:"', '')

class TestHelpers(test.TestCase):

    def test_local_name(self):
        self.assertEqual(parser.local_name("{DAV:}Response"), "response")
        self.assertEqual(parser.local_name("d:href"), "href")
        self.assertEqual(parser.local_name("href"), "href")
        self.assertEqual(parser.local_name(None), "")

    def test_is_structured(self):
        self.assertTrue(parser.is_structured("application/xml; charset=utf-8", b"<html/>"))
        self.assertTrue(parser.is_structured("text/xml", ""))
        self.assertTrue(parser.is_structured("text/html", b'  <?xml version="1.0"?><multistatus/>'))
        self.assertTrue(parser.is_structured(None, '<?xml version="1.0"?>'))
        self.assertFalse(parser.is_structured("text/html", b"<html><body>Error</body></html>"))
        self.assertFalse(parser.is_structured("", b""))

    def test_is_parent_ref(self):
        self.assertTrue(parser.is_parent_ref(".."))
        self.assertTrue(parser.is_parent_ref("../"))
        self.assertTrue(parser.is_parent_ref("/docs/.."))
        self.assertTrue(parser.is_parent_ref("Parent Directory"))
        self.assertTrue(parser.is_parent_ref("上级目录"))
        self.assertFalse(parser.is_parent_ref("docs/a..b.txt"))
        self.assertFalse(parser.is_parent_ref(""))

    def test_is_self_ref(self):
        self.assertTrue(parser.is_self_ref("docs", "docs"))
        self.assertTrue(parser.is_self_ref("docs/", "/docs"))
        self.assertTrue(parser.is_self_ref("/", ""))
        self.assertTrue(parser.is_self_ref("", ""))
        self.assertFalse(parser.is_self_ref("docs/a.txt", "docs"))
        self.assertFalse(parser.is_self_ref("docs", ""))

    def test_relative_path(self):
        self.assertEqual(parser.relative_path("/dav/docs/a%20b.txt", "/dav"), "docs/a b.txt")
        self.assertEqual(parser.relative_path("https://h.example.com/dav/docs/", "/dav/"), "docs/")
        self.assertEqual(parser.relative_path("/dav", "/dav"), "")
        self.assertEqual(parser.relative_path("/docs/a.txt", ""), "docs/a.txt")
        self.assertEqual(parser.relative_path("/files/user%40example.com/docs/a.txt",
                                              "/files/user%40example.com/"), "docs/a.txt")
        self.assertEqual(parser.relative_path("/files/K%C3%B6ln/docs/", "/files/K%C3%B6ln"), "docs/")

    def test_index_values(self):
        self.assertEqual(parser.parse_index_size("1234"), 1234)
        self.assertEqual(parser.parse_index_size("4.0K"), 4096)
        self.assertEqual(parser.parse_index_size("2M"), 2 * 1024 * 1024)
        self.assertEqual(parser.parse_index_size("-"), 0)
        self.assertEqual(parser.parse_index_size(None), 0)

        self.assertEqual(parser.parse_index_date("2024-01-03 11:30"),
                         datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))
        self.assertEqual(parser.parse_index_date("03-Jan-2024 11:30"),
                         datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))
        self.assertIsNone(parser.parse_index_date("yesterday"))
        self.assertIsNone(parser.parse_http_date("not a date"))

class TestParseMultistatus(test.TestCase):

    def check_docs(self, entries):
        self.assertEqual([(e.path, e.name, e.kind) for e in entries],
                         [("docs/a.txt", "a.txt", EntryKind.FILE), ("docs/b", "b", EntryKind.DIRECTORY)])
        self.assertEqual(entries[0].size, 1234)
        self.assertEqual(entries[0].modified, datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))
        self.assertEqual(entries[1].size, 0)

    def test_self_excluded(self):
        self.check_docs(parser.parse_multistatus(qualified, "docs"))
        self.check_docs(parser.parse_multistatus(qualified, "/docs/"))

    def test_spellings(self):
        expected = parser.parse_multistatus(qualified, "docs")
        for body in (prefixed, undeclared, unqualified):
            entries = parser.parse_multistatus(body.encode('utf-8'), "docs")
            self.check_docs(entries)
            self.assertEqual(entries, expected)

    def test_basepath(self):
        body = qualified.replace("<href>/docs", "<href>/remote.php/dav/docs")
        self.check_docs(parser.parse_multistatus(body, "docs", "/remote.php/dav"))

    def test_encoded_basepath(self):
        body = qualified.replace("<href>/docs", "<href>/remote.php/dav/files/user%40example.com/docs")
        self.check_docs(parser.parse_multistatus(body, "docs", "/remote.php/dav/files/user%40example.com/"))

    def test_root(self):
        body = """<?xml version="1.0"?>
<d:multistatus xmlns:d="DAV:">
  <d:response><d:href>/</d:href>
    <d:propstat><d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop></d:propstat>
  </d:response>
  <d:response><d:href>/My%20Files/</d:href>
    <d:propstat><d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop></d:propstat>
  </d:response>
  <d:response><d:href>/../</d:href>
    <d:propstat><d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop></d:propstat>
  </d:response>
</d:multistatus>"""
        entries = parser.parse_multistatus(body, "")
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].name, "My Files")
        self.assertTrue(entries[0].is_dir)

    def test_empty(self):
        body = """<?xml version="1.0"?>
<multistatus xmlns="DAV:"><response><href>/docs/</href>
<propstat><prop><resourcetype><collection/></resourcetype></prop></propstat></response>
</multistatus>"""
        self.assertEqual(parser.parse_multistatus(body, "docs"), [])

    def test_not_multistatus(self):
        with self.assertRaises(ListingParseError):
            parser.parse_multistatus('<?xml version="1.0"?><error>nope</error>', "docs")
        with self.assertRaises(ListingParseError):
            parser.parse_multistatus(b"", "docs")

    def test_extract_content_length(self):
        self.assertEqual(parser.extract_content_length(qualified), 1234)
        self.assertIsNone(parser.extract_content_length("<multistatus/>"))
        self.assertIsNone(parser.extract_content_length(b""))

apache_index = """<!DOCTYPE HTML PUBLIC "-//W3C//DTD HTML 3.2 Final//EN">
<html><head><title>Index of /files/docs</title></head><body>
<h1>Index of /files/docs</h1>
<table>
<tr><th><img src="/icons/blank.gif" alt="[ICO]"></th><th><a href="?C=N;O=D">Name</a></th><th><a href="?C=M;O=A">Last modified</a></th><th><a href="?C=S;O=A">Size</a></th><th>Description</th></tr>
<tr><td><img src="/icons/back.gif" alt="[PARENTDIR]"></td><td><a href="/files/">Parent Directory</a></td><td>&nbsp;</td><td align="right">  - </td><td>&nbsp;</td></tr>
<tr><td><img src="/icons/folder.gif" alt="[DIR]"></td><td><a href="images/">images/</a></td><td align="right">2024-01-02 10:00  </td><td align="right">  - </td><td>&nbsp;</td></tr>
<tr><td><img src="/icons/text.gif" alt="[TXT]"></td><td><a href="report%202023.csv">report 2023.csv</a></td><td align="right">2024-01-03 11:30  </td><td align="right">4.0K</td><td>&nbsp;</td></tr>
</table>
</body></html>
"""

nginx_index = """<html>
<head><title>Index of /pub/</title></head>
<body>
<h1>Index of /pub/</h1><hr><pre><a href="../">../</a>
<a href="data/">data/</a>                                              03-Jan-2024 11:30       -
<a href="notes.txt">notes.txt</a>                                          03-Jan-2024 11:30     512
</pre><hr></body>
</html>
"""

class TestParseHTML(test.TestCase):

    def test_parent_scenario(self):
        body = '<html><body><a href="../">Parent Directory</a><a href="report.csv">report.csv</a></body></html>'
        entries = parser.parse_listing(body, "text/html", "")
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].name, "report.csv")
        self.assertTrue(entries[0].is_file)

    def test_parent_forms(self):
        for link in ('<a href="/up/">Parent Directory</a>', '<a href="..">..</a>',
                     '<a href="/x/">上级目录</a>', '<a href="../">Parent</a>',
                     '<a href="/files/">parent directory</a>'):
            body = "<html><body>" + link + '<a href="keep.txt">keep.txt</a></body></html>'
            self.assertEqual([e.name for e in parser.parse_html_index(body, "files")], ["keep.txt"],
                             "failed to exclude: " + link)

    def test_apache(self):
        entries = parser.parse_html_index(apache_index, "docs", "/files")
        self.assertEqual([(e.path, e.kind) for e in entries],
                         [("docs/images", EntryKind.DIRECTORY), ("docs/report 2023.csv", EntryKind.FILE)])
        self.assertEqual(entries[1].name, "report 2023.csv")
        self.assertEqual(entries[1].size, 4096)
        self.assertEqual(entries[1].modified, datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))
        self.assertEqual(entries[0].size, 0)

    def test_nginx(self):
        entries = parser.parse_html_index(nginx_index, "pub")
        self.assertEqual([e.path for e in entries], ["pub/data", "pub/notes.txt"])
        self.assertTrue(entries[0].is_dir)
        self.assertEqual(entries[1].size, 512)
        self.assertEqual(entries[1].modified, datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))

    def test_absolute_hrefs(self):
        body = '<html><body><a href="/dav/docs/">docs</a><a href="/dav/docs/x.txt">x.txt</a></body></html>'
        entries = parser.parse_html_index(body, "docs", "/dav")
        self.assertEqual([e.path for e in entries], ["docs/x.txt"])

    def test_empty_index(self):
        body = '<html><body><h1>Index of /</h1><a href="../">Parent Directory</a></body></html>'
        self.assertEqual(parser.parse_listing(body, "text/html", "empty"), [])

class TestParseJSON(test.TestCase):

    def test_json(self):
        body = json.dumps([
            { "name": "a.txt", "size": 10, "type": "file", "lastModified": "2024-01-03T11:30:00Z" },
            { "filename": "sub", "isDirectory": True, "mtime": 1704281400 },
            { "name": "..", "type": "directory" },
            "junk"
        ])
        entries = parser.parse_listing(body, "application/json", "docs")
        self.assertEqual([(e.path, e.kind, e.size) for e in entries],
                         [("docs/a.txt", EntryKind.FILE, 10), ("docs/sub", EntryKind.DIRECTORY, 0)])
        self.assertEqual(entries[0].modified, datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))
        self.assertEqual(entries[1].modified, datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))

    def test_json_millis(self):
        entries = parser.parse_json_listing('[{"name": "a", "mtime": 1704281400000}]')
        self.assertEqual(entries[0].modified, datetime(2024, 1, 3, 11, 30, tzinfo=timezone.utc))

    def test_empty(self):
        self.assertEqual(parser.parse_listing("[]", "application/json", "docs"), [])

    def test_not_array(self):
        with self.assertRaises(ListingParseError):
            parser.parse_json_listing('{"files": []}')

class TestParseListing(test.TestCase):

    def test_uninterpretable(self):
        with self.assertRaises(ListingParseError):
            parser.parse_listing("Service Temporarily Unavailable", "text/plain", "docs")
        with self.assertRaises(ListingParseError):
            parser.parse_listing("", "text/plain", "docs")

    def test_xml_sniffed(self):
        entries = parser.parse_listing(prefixed.encode('utf-8'), "text/plain", "docs")
        self.assertEqual([e.name for e in entries], ["a.txt", "b"])


if __name__ == '__main__':
    test.main()
