"""
Functions for turning a raw directory-listing response into a list of
:py:class:`~unistore.storage.models.FileEntry` objects.

Three response forms are understood:

*  a WebDAV ``multistatus`` document (the structured form returned by PROPFIND).  Servers disagree
   on how they declare the ``DAV:`` namespace--some qualify the element names, some use a ``d:`` or
   ``D:`` prefix (occasionally without declaring it), and some use no namespace at all--so elements
   are matched on their local names only.
*  an HTML directory index, as generated by Apache, nginx, IIS, and friends (the plain form).
*  a JSON array of objects describing the children (another plain form).

All parsers apply the same filtering:  links to a parent directory are dropped, as is any entry
that denotes the requested directory itself.  A listing that is well-formed but empty yields an
empty list; :py:class:`~unistore.storage.exceptions.ListingParseError` is raised only when a body
cannot be interpreted at all.
"""
import re, json, logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from urllib.parse import unquote, urlsplit
from typing import List

from lxml import etree
import lxml.html

from unistore.base.config import blab
from ..models import FileEntry, EntryKind
from ..exceptions import ListingParseError

log = logging.getLogger("unistore.webdav.parser")

PROPFIND_BODY = '<?xml version="1.0" encoding="utf-8"?>' \
                '<propfind xmlns="DAV:"><prop>' \
                '<resourcetype/><getcontentlength/><getlastmodified/>' \
                '</prop></propfind>'

PARENT_PHRASES = ("Parent Directory", "上级目录", "Parent directory", "parent directory")

_re_ns = re.compile(r'^\{[^\}]+\}')

def local_name(tag) -> str:
    """
    return the unqualified, lower-case name of an element tag, dropping either a ``{namespace}``
    qualifier or a ``prefix:``
    """
    if not isinstance(tag, str):
        return ''
    name = _re_ns.sub('', tag)
    if ':' in name:
        name = name.split(':', 1)[1]
    return name.lower()

def _children(el, name):
    return [c for c in el if local_name(c.tag) == name]

def _descendants(el, name):
    return [d for d in el.iter() if local_name(d.tag) == name]

def _first_text(el, name):
    found = _descendants(el, name)
    if not found or found[0].text is None:
        return None
    return found[0].text.strip()

def is_structured(content_type: str, body) -> bool:
    """
    return True if a response looks like an XML document, judging either from its content type
    or from the presence of an XML prolog at the start of the body.
    """
    if content_type and "xml" in content_type.lower():
        return True
    if isinstance(body, bytes):
        return body.lstrip().startswith(b"<?xml")
    return bool(body) and body.lstrip().startswith("<?xml")

def is_parent_ref(ref: str) -> bool:
    """
    return True if the given (decoded) reference or link text denotes a parent directory
    """
    if not ref:
        return False
    ref = ref.strip()
    if ref == ".." or ref.endswith("../") or ref.endswith("/.."):
        return True
    return any(p in ref for p in PARENT_PHRASES)

def normalize_dir(path: str) -> str:
    """
    return a path with surrounding slashes removed and a single trailing slash appended
    """
    return (path or '').strip('/') + '/'

def is_self_ref(path: str, reqpath: str) -> bool:
    """
    return True if ``path`` denotes the requested directory itself
    """
    if normalize_dir(path) == normalize_dir(reqpath):
        return True
    if not (reqpath or '').strip('/'):
        return path in ('/', '')
    return False

def relative_path(href: str, basepath: str='') -> str:
    """
    convert an href from a listing response into a path relative to the service root.  The href
    is percent-decoded; any scheme and host are dropped, as is the service's ``basepath`` (which
    is compared in its decoded form).
    """
    path = unquote(urlsplit(href).path) if '://' in href else unquote(href)
    base = normalize_dir(unquote(basepath or ''))
    if base != '/':
        base = '/' + base
        if path.startswith(base):
            path = path[len(base):]
        elif path.rstrip('/') == base.rstrip('/'):
            path = ''
    return path.lstrip('/')

def parse_http_date(value: str):
    """
    parse an RFC 1123 (HTTP-style) date, returning None if it cannot be parsed
    """
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None

_index_date_formats = [ "%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S", "%d-%b-%Y %H:%M", "%d-%b-%Y %H:%M:%S",
                        "%Y-%b-%d %H:%M", "%m/%d/%Y %I:%M %p" ]

def parse_index_date(value: str):
    """
    parse a date as it appears in an HTML directory index, returning None if it is not
    in a recognized format
    """
    if not value:
        return None
    value = " ".join(value.split())
    for fmt in _index_date_formats:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return parse_http_date(value)

_size_re = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([KMGT])?i?B?\s*$', re.IGNORECASE)
_size_mult = { None: 1, 'K': 1024, 'M': 1024**2, 'G': 1024**3, 'T': 1024**4 }

def parse_index_size(value: str) -> int:
    """
    parse a size as it appears in an HTML directory index (e.g. "1234", "4.0K", "12 MB"),
    returning 0 if it is missing or not a size (e.g. "-")
    """
    if not value:
        return 0
    m = _size_re.match(value)
    if not m:
        return 0
    mult = _size_mult[m.group(2).upper() if m.group(2) else None]
    return int(float(m.group(1)) * mult)


def parse_multistatus(body, reqpath: str='', basepath: str='') -> List[FileEntry]:
    """
    parse a WebDAV multistatus document into a list of the entries it describes, excluding the
    requested directory itself.

    :param body:         the response body (bytes or str)
    :param str reqpath:  the service-relative path of the directory that was listed
    :param str basepath: the URL path of the service root, which is removed from each href
    :raises ListingParseError:  if the body is not a multistatus XML document
    """
    if isinstance(body, str):
        body = body.encode('utf-8')
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(body, parser)
    except etree.XMLSyntaxError as ex:
        raise ListingParseError("Unparseable XML in listing response", reqpath, ex) from ex
    if root is None or local_name(root.tag) != "multistatus":
        raise ListingParseError("Listing response is not a multistatus document", reqpath)

    out = []
    for resp in _descendants(root, "response"):
        href = _first_text(resp, "href")
        if not href:
            continue
        decoded = unquote(href)
        if is_parent_ref(decoded):
            blab(log, "skipping parent reference: %s", decoded)
            continue
        path = relative_path(href, basepath)
        if is_self_ref(path, reqpath):
            continue

        isdir = False
        for rt in _descendants(resp, "resourcetype"):
            if _children(rt, "collection"):
                isdir = True
                break
        if not isdir and decoded.endswith('/') and not _descendants(resp, "resourcetype"):
            isdir = True

        size = _first_text(resp, "getcontentlength")
        try:
            size = int(size) if size else 0
        except ValueError:
            size = 0

        path = path.rstrip('/')
        if not path:
            continue
        entry = FileEntry(path, EntryKind.DIRECTORY if isdir else EntryKind.FILE, size=size,
                          modified=parse_http_date(_first_text(resp, "getlastmodified")),
                          mime=_first_text(resp, "getcontenttype"), etag=_first_text(resp, "getetag"))
        blab(log, "listing entry: %s", entry)
        out.append(entry)

    return out


def _is_skipped_href(href: str) -> bool:
    return href in ("../", "/", "..") or href.startswith("?") or href.startswith("#") or \
           href.startswith("mailto:") or href.startswith("javascript:")

def _is_parent_text(text: str) -> bool:
    return text in ("Parent", "..") or text.startswith("../") or any(p in text for p in PARENT_PHRASES)

_pre_tail_re = re.compile(r'^\s*(\S+\s+\d{1,2}:\d{2}(?::\d{2})?)\s+(\S+)')

def _row_details(anchor):
    """
    recover (modified, size) for a link in a tabular (Apache-style) or preformatted (nginx-style)
    index; either may be None
    """
    td = anchor.getparent()
    while td is not None and td.tag not in ("td", "th", "pre", "body"):
        td = td.getparent()

    if td is not None and td.tag == "td":
        tr = td.getparent()
        cells = [c.text_content().strip() for c in tr if c.tag in ("td", "th")] if tr is not None else []
        if len(cells) > 3:
            return (parse_index_date(cells[2]), parse_index_size(cells[3]))
        if len(cells) == 3:
            return (parse_index_date(cells[1]), parse_index_size(cells[2]))
        return (None, None)

    if anchor.tail:
        m = _pre_tail_re.match(anchor.tail)
        if m:
            return (parse_index_date(m.group(1)), parse_index_size(m.group(2)))
    return (None, None)

def parse_html_index(body, reqpath: str='', basepath: str='') -> List[FileEntry]:
    """
    parse an HTML directory index into a list of entries, excluding links to the parent
    directory and to the directory itself.

    :raises ListingParseError:  if the body cannot be parsed as HTML
    """
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    if not body or not body.strip():
        raise ListingParseError("Empty listing response", reqpath)
    try:
        doc = lxml.html.fromstring(body)
    except (etree.ParserError, ValueError) as ex:
        raise ListingParseError("Unparseable HTML in listing response", reqpath, ex) from ex

    reqdir = normalize_dir(reqpath)
    seen = set()
    out = []
    for anchor in doc.iter("a"):
        href = anchor.get("href")
        if not href:
            continue
        href = href.strip()
        text = anchor.text_content().strip()
        if _is_skipped_href(href) or is_parent_ref(unquote(href)) or _is_parent_text(text):
            blab(log, "skipping index link: %s (%s)", href, text)
            continue
        if '://' in href and not href.startswith("http"):
            continue

        isdir = href.split('?')[0].endswith('/')
        if href.startswith('/') or '://' in href:
            path = relative_path(href.split('?')[0], basepath)
        else:
            path = (reqdir.lstrip('/') if reqdir != '/' else '') + unquote(href.split('?')[0])
        if is_self_ref(path, reqpath):
            continue
        path = path.rstrip('/')
        if not path or path in seen:
            continue
        seen.add(path)

        modified, size = _row_details(anchor)
        out.append(FileEntry(path, EntryKind.DIRECTORY if isdir else EntryKind.FILE,
                             size=size or 0, modified=modified))

    return out

def _looks_like_html(body: str) -> bool:
    head = body.lstrip()[:1024].lower()
    return head.startswith("<!doctype html") or "<html" in head or "<body" in head or \
           "<a " in body.lower()

def _json_time(value):
    if value is None or value == '':
        return None
    if isinstance(value, (int, float)):
        # heuristically distinguish epoch milliseconds from seconds
        if value > 1e11:
            value = value / 1000.0
        return datetime.fromtimestamp(value, timezone.utc)
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return parse_http_date(str(value))

def parse_json_listing(body, reqpath: str='') -> List[FileEntry]:
    """
    parse a JSON array of objects, each describing one child with properties ``name`` (or
    ``filename``), ``size``, ``type`` (or ``isDirectory``), and ``lastModified`` (or ``mtime``).

    :raises ListingParseError:  if the body is not a JSON array
    """
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    try:
        data = json.loads(body)
    except ValueError as ex:
        raise ListingParseError("Listing response is not valid JSON", reqpath, ex) from ex
    if not isinstance(data, list):
        raise ListingParseError("JSON listing response is not an array", reqpath)

    reqdir = reqpath.strip('/')
    out = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = item.get('name') or item.get('filename')
        if not name or is_parent_ref(name) or name in ('.', '/'):
            continue
        isdir = item.get('type') == 'directory' or bool(item.get('isDirectory')) or name.endswith('/')
        name = name.strip('/')
        if not name:
            continue
        path = f"{reqdir}/{name}" if reqdir else name
        try:
            size = int(item.get('size') or 0)
        except (TypeError, ValueError):
            size = 0
        modified = _json_time(item.get('lastModified', item.get('mtime')))
        out.append(FileEntry(path, EntryKind.DIRECTORY if isdir else EntryKind.FILE, name=name.split('/')[-1],
                             size=size, modified=modified))
    return out

def parse_plain_listing(body, reqpath: str='', basepath: str='') -> List[FileEntry]:
    """
    parse a response to a plain GET of a directory:  an HTML index or, failing that, a JSON array.

    :raises ListingParseError:  if the body is neither
    """
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    text = (body or '').lstrip()

    if text.startswith('[') or text.startswith('{'):
        return parse_json_listing(text, reqpath)

    entries = []
    htmlerr = None
    if text.startswith('<'):
        try:
            entries = parse_html_index(text, reqpath, basepath)
        except ListingParseError as ex:
            htmlerr = ex
    if entries:
        return entries

    try:
        return parse_json_listing(text, reqpath)
    except ListingParseError as ex:
        if htmlerr is None and text and _looks_like_html(text):
            # a well-formed index with no visible children
            return []
        raise ListingParseError("Unable to interpret directory listing as HTML or JSON", reqpath,
                                htmlerr or ex) from ex

def parse_listing(body, content_type: str=None, reqpath: str='', basepath: str='') -> List[FileEntry]:
    """
    parse a directory listing body of any supported form, trying the structured (XML) form first
    when the response looks structured, then HTML, then JSON.
    """
    if is_structured(content_type, body):
        try:
            return parse_multistatus(body, reqpath, basepath)
        except ListingParseError as ex:
            log.debug("XML listing parse failed (%s); trying plain forms", str(ex))
    return parse_plain_listing(body, reqpath, basepath)

def extract_content_length(body):
    """
    return the first ``getcontentlength`` value found in a multistatus document (as returned by a
    depth-0 PROPFIND on a file), or None if there is none
    """
    if isinstance(body, str):
        body = body.encode('utf-8')
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(body, parser)
    except etree.XMLSyntaxError:
        return None
    if root is None:
        return None
    value = _first_text(root, "getcontentlength")
    try:
        return int(value) if value else None
    except ValueError:
        return None
