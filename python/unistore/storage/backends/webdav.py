"""
The storage driver for WebDAV servers and for plain HTTP servers that publish directory indexes.
"""
import logging
from urllib.parse import urlparse

from ..models import Connection, DirectoryListing, ListOptions
from ..exceptions import *
from ..transport import HTTPTransport
from ..webdav.capability import CapabilityDetector
from ..webdav.parser import is_structured, extract_content_length
from .base import StorageBackend, StreamChunks, DEF_STREAM_CHUNK

_size_propfind = '<?xml version="1.0" encoding="utf-8"?>' \
                 '<propfind xmlns="DAV:"><prop><getcontentlength/></prop></propfind>'

class WebDAVBackend(StorageBackend):
    """
    a driver that accesses a WebDAV (or plain HTTP) server through an :py:class:`HTTPTransport`.

    Listing goes through a :py:class:`~unistore.storage.webdav.capability.CapabilityDetector`,
    which decides on the first listing whether the server supports PROPFIND and remembers the
    decision for the life of the connection.
    """

    def __init__(self, conn: Connection, config=None, log: logging.Logger=None, transport=None):
        super(WebDAVBackend, self).__init__(conn, config, log)
        url = conn.get('url') or conn.url
        self.basepath = urlparse(url).path
        auth = None
        if conn.get('username'):
            auth = (conn.get('username'), conn.get('password') or '')
        if transport is None:
            transport = HTTPTransport(url, auth, self.cfg.get('transport', {}),
                                      log=self.log.getChild("transport"))
        self.transport = transport
        self.detector = CapabilityDetector(self.transport, self.basepath,
                                           self.log.getChild("capability"))

    @property
    def capability(self):
        return self.detector.record

    def connect(self):
        self.detector.reset()
        resp = self.transport.request("PROPFIND", '', data=_size_propfind, headers={"Depth": "0"},
                                      check=False)
        if resp.status_code in (401, 403):
            self.transport.check_status(resp, "PROPFIND")
        if resp.status_code >= 400:
            # not all servers support PROPFIND; make sure the root is at least reachable
            self.log.debug("PROPFIND on root returned %d; checking with GET", resp.status_code)
            resp = self.transport.request("GET", '', stream=True)
            resp.close()
        self.log.info("Connected to WebDAV server at %s", self.transport.baseurl)

    def disconnect(self):
        self.detector.reset()
        self.transport.close()

    def list_directory(self, path, options: ListOptions=None):
        entries = self.detector.list(path)
        if options and options.prefix:
            entries = [e for e in entries if e.name.startswith(options.prefix)]
        return DirectoryListing(entries, path, total_count=len(entries))

    def read_range(self, path, start=None, length=None):
        try:
            resp = self.transport.get(path, start, length)
        except RangeNotSatisfiable:
            # requested range begins at or past the end of the file
            return b''
        data = resp.content
        if start is not None and resp.status_code == 200:
            # server ignored the Range header
            end = start + length if length is not None else None
            data = data[start:end]
        return data

    def get_size(self, path):
        resp = self.transport.head(path)
        size = resp.headers.get('Content-Length')
        if size is not None and resp.headers.get('Content-Encoding') in (None, '', 'identity'):
            try:
                return int(size)
            except ValueError:
                pass

        self.log.debug("HEAD %s did not report a size; trying PROPFIND", path)
        resp = self.transport.request("PROPFIND", path, data=_size_propfind,
                                      headers={"Depth": "0"}, check=False)
        if 200 <= resp.status_code < 300 and is_structured(resp.headers.get('Content-Type'), resp.content):
            size = extract_content_length(resp.content)
            if size is not None:
                return size
        raise SizeUnavailable(path)

    def open_stream(self, path, chunk_size=DEF_STREAM_CHUNK):
        resp = self.transport.get(path, stream=True)
        size = resp.headers.get('Content-Length')
        try:
            size = int(size) if size is not None else None
        except ValueError:
            size = None

        def chunks():
            try:
                for chunk in resp.iter_content(chunk_size):
                    if chunk:
                        yield chunk
            finally:
                resp.close()

        return (size, StreamChunks(chunks(), resp))
