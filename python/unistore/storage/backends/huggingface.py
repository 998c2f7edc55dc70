"""
The storage driver for datasets on the Hugging Face Hub, accessed through the Hub's HTTP API.

The Hub is presented as a hierarchy:

* the root (empty path) lists popular datasets--or, if the connection names an organization, that
  organization's datasets;
* a path consisting of a single name without a colon lists the datasets of that organization;
* ``search/<term>`` lists the datasets matching a search term;
* ``<owner>:<dataset>[/<path>]`` lists the files in a dataset (at the given path).

Dataset identifiers are displayed with a colon in place of the slash (``owner:name``).
"""
import logging
from urllib.parse import urlsplit, parse_qs, quote, unquote
from datetime import datetime

from ..models import FileEntry, EntryKind, DirectoryListing, ListOptions, DIRECTORY_MIME
from ..exceptions import *
from ..transport import HTTPTransport
from ..adapters import HuggingFaceAdapter
from .base import StorageBackend, StreamChunks, DEF_STREAM_CHUNK

HUB_URL = "https://huggingface.co"
DEF_PAGE_SIZE = 20
SEARCH_PREFIX = "search/"

def display_id(dataset_id: str) -> str:
    """
    convert a Hub dataset identifier (``owner/name``) to its display form (``owner:name``)
    """
    return dataset_id.replace('/', ':')

def next_cursor(resp):
    """
    extract the pagination cursor for the next page from a response's Link header, or None if
    there is no next page
    """
    nxt = resp.links.get('next', {}).get('url')
    if not nxt:
        return None
    cursor = parse_qs(urlsplit(nxt).query).get('cursor')
    return cursor[0] if cursor else None

def _parse_time(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None

class HuggingFaceBackend(StorageBackend):
    """
    a driver for the Hugging Face Hub's dataset API.  An access token, if needed, is given
    as the connection's ``password``.
    """

    def __init__(self, conn, config=None, log: logging.Logger=None, transport=None):
        super(HuggingFaceBackend, self).__init__(conn, config, log)
        self.adapter = HuggingFaceAdapter()
        headers = {}
        if conn.get('password'):
            headers['Authorization'] = f"Bearer {conn.get('password')}"
        if transport is None:
            transport = HTTPTransport(conn.get('url') or HUB_URL, config=self.cfg.get('transport', {}),
                                      headers=headers, log=self.log.getChild("transport"))
        self.transport = transport

    def connect(self):
        # the Hub is public; this verifies reachability and, if given, the token
        self.transport.get("api/datasets", params={ "limit": 1 })
        self.log.info("Connected to the Hugging Face Hub")

    def disconnect(self):
        self.transport.close()

    def _page_params(self, options, **params):
        params['limit'] = (options.page_size if options and options.page_size else DEF_PAGE_SIZE)
        if options and options.marker:
            params['cursor'] = options.marker
        return params

    def _list_datasets(self, path, options, **query):
        params = self._page_params(options, **query)
        resp = self.transport.get("api/datasets", params=params)
        try:
            data = resp.json()
        except ValueError as ex:
            raise UnexpectedStorageResponse("Dataset list is not JSON", resp.url, resp.text) from ex

        entries = []
        for ds in data:
            if not ds.get('id'):
                continue
            entries.append(FileEntry(display_id(ds['id']), EntryKind.DIRECTORY,
                                     modified=_parse_time(ds.get('lastModified'))))
        cursor = next_cursor(resp)
        has_more = bool(cursor) or len(entries) == params['limit']
        return DirectoryListing(entries, path, has_more=has_more, next_marker=cursor)

    def _list_dataset_files(self, dataset_id, subpath, path):
        ep = f"api/datasets/{dataset_id}/tree/main"
        if subpath:
            ep += "/" + subpath.strip('/')
        resp = self.transport.get(ep)
        try:
            data = resp.json()
        except ValueError as ex:
            raise UnexpectedStorageResponse("Dataset tree is not JSON", resp.url, resp.text) from ex

        base = display_id(dataset_id)
        prefix = subpath.strip('/') + '/' if subpath.strip('/') else ''
        seen = set()
        entries = []
        for item in data:
            ipath = item.get('path') or ''
            if prefix and not ipath.startswith(prefix):
                continue
            rel = ipath[len(prefix):]
            if not rel:
                continue
            isdir = item.get('type') == 'directory'
            if '/' in rel:
                rel = rel.split('/', 1)[0]
                isdir = True
            if rel in seen:
                continue
            seen.add(rel)
            fullpath = f"{base}/{prefix}{rel}"
            if isdir:
                entries.append(FileEntry(fullpath, EntryKind.DIRECTORY, mime=DIRECTORY_MIME))
            else:
                entries.append(FileEntry(fullpath, EntryKind.FILE, size=item.get('size', 0),
                                         etag=item.get('oid')))
        return DirectoryListing(entries, path, total_count=len(entries))

    def list_directory(self, path, options: ListOptions=None):
        path = path.strip('/')
        if not path:
            return self._list_datasets(path, options, sort="downloads", direction=-1)
        if path.startswith(SEARCH_PREFIX):
            return self.search(unquote(path[len(SEARCH_PREFIX):]), options)

        dataset_id, subpath = self.adapter.split_path(path)
        if not dataset_id:
            return self._list_datasets(path, options, author=path)
        return self._list_dataset_files(dataset_id, subpath, path)

    def search(self, term, options: ListOptions=None):
        listing = self._list_datasets(SEARCH_PREFIX + quote(term), options, search=term)
        return listing

    def _resolve(self, path):
        dataset_id, filepath = self.adapter.split_path(path.strip('/'))
        if not dataset_id or not filepath:
            raise StorageResourceNotFound(path, "Not a dataset file path: "+path)
        return f"datasets/{dataset_id}/resolve/main/{filepath}"

    def read_range(self, path, start=None, length=None):
        try:
            resp = self.transport.get(self._resolve(path), start, length)
        except RangeNotSatisfiable:
            return b''
        data = resp.content
        if start is not None and resp.status_code == 200:
            end = start + length if length is not None else None
            data = data[start:end]
        return data

    def get_size(self, path):
        dataset_id, filepath = self.adapter.split_path(path.strip('/'))
        if not dataset_id or not filepath:
            raise StorageResourceNotFound(path, "Not a dataset file path: "+path)

        parent = filepath.rsplit('/', 1)[0] if '/' in filepath else ''
        ep = f"api/datasets/{dataset_id}/tree/main"
        if parent:
            ep += "/" + parent
        try:
            for item in self.transport.get(ep).json():
                if item.get('path') == filepath and item.get('size') is not None:
                    return int(item['size'])
        except (ValueError, StorageClientError) as ex:
            self.log.debug("Tree lookup failed for %s (%s); trying HEAD", path, str(ex))

        resp = self.transport.head(self._resolve(path), allow_redirects=True)
        size = resp.headers.get('X-Linked-Size') or resp.headers.get('Content-Length')
        if size is None:
            raise SizeUnavailable(path)
        return int(size)

    def open_stream(self, path, chunk_size=DEF_STREAM_CHUNK):
        resp = self.transport.get(self._resolve(path), stream=True)
        size = resp.headers.get('Content-Length')
        size = int(size) if size and size.isdigit() else None

        def chunks():
            try:
                for chunk in resp.iter_content(chunk_size):
                    if chunk:
                        yield chunk
            finally:
                resp.close()

        return (size, StreamChunks(chunks(), resp))
