"""
Detection of the directory-listing method a WebDAV-like server actually supports.

Many servers that answer at a WebDAV URL implement the protocol only partially:  some reject
PROPFIND outright (405), some accept it but answer with an HTML error page, and some are plain
web servers publishing an HTML (or JSON) index.  The :py:class:`CapabilityDetector` settles the
question once per connection.  Its state moves from ``UNDETERMINED`` to either ``STRUCTURED``
or ``PLAIN`` on the first successful listing and never changes afterward; only a new connection
(i.e. a new detector or a call to :py:meth:`~CapabilityDetector.reset`) starts detection over.
"""
import logging, time
from enum import Enum
from typing import List

from ..exceptions import StorageServiceError, ListingParseError, UnexpectedStorageResponse
from ..models import FileEntry
from ..transport import HTTPTransport
from .parser import PROPFIND_BODY, is_structured, parse_multistatus, parse_listing

class ListingMethod(Enum):
    """
    the states of capability detection, named for the listing method they select
    """
    UNDETERMINED = "undetermined"
    STRUCTURED = "structured"
    PLAIN = "plain"

class CapabilityRecord:
    """
    the memoized detection decision for one connection.

    :ivar bool supports_structured:  True if PROPFIND listing works, False if it was found not
                                     to, or None if not yet determined
    :ivar ListingMethod method:      the listing method to use
    :ivar float detected_at:         the epoch time the decision was made (None if undetermined)
    """

    def __init__(self):
        self.supports_structured = None
        self.method = ListingMethod.UNDETERMINED
        self.detected_at = None

    @property
    def determined(self) -> bool:
        return self.method != ListingMethod.UNDETERMINED

    def _confirm(self, method: ListingMethod):
        self.method = method
        self.supports_structured = (method == ListingMethod.STRUCTURED)
        self.detected_at = time.time()

    def __repr__(self):
        return "CapabilityRecord(%s)" % self.method.value


class CapabilityDetector:
    """
    a listing strategy that detects, and then remembers, whether a server supports structured
    (PROPFIND) listing.  The detector is not safe for concurrent use; callers must not start a
    second listing while a first one is still detecting.
    """

    def __init__(self, transport: HTTPTransport, basepath: str='', log: logging.Logger=None):
        """
        :param HTTPTransport transport:  the transport bound to the server
        :param str basepath:  the URL path of the service root; it is removed from the hrefs
                              in listing responses
        :param Logger log:    the Logger to use for messages
        """
        if not log:
            log = logging.getLogger("unistore.webdav.capability")
        self.log = log
        self.transport = transport
        self.basepath = basepath
        self.record = CapabilityRecord()

    @property
    def state(self) -> ListingMethod:
        return self.record.method

    def reset(self):
        """
        forget any previous decision so that the next listing starts detection over
        """
        self.record = CapabilityRecord()

    def list(self, path: str) -> List[FileEntry]:
        """
        list the directory with the given service-relative path using the detected method,
        detecting it first if necessary.

        :raises StorageServiceError:  if the server could not provide a listing
        :raises ListingParseError:    if the server's listing could not be interpreted
        """
        if self.record.method == ListingMethod.STRUCTURED:
            return self.list_structured(path)
        if self.record.method == ListingMethod.PLAIN:
            return self.list_plain(path)
        return self._detect_and_list(path)

    def _detect_and_list(self, path):
        try:
            entries = self.list_structured(path)
        except (StorageServiceError, ListingParseError) as ex:
            self.log.warning("Structured listing unavailable for /%s (%s); falling back to GET",
                             path, str(ex))
        else:
            self.record._confirm(ListingMethod.STRUCTURED)
            self.log.info("Server supports structured (PROPFIND) listing")
            return entries

        # any failure here propagates and leaves the state undetermined
        entries = self.list_plain(path)
        self.record._confirm(ListingMethod.PLAIN)
        self.log.info("Server supports plain (GET) listing only")
        return entries

    def _dirpath(self, path):
        path = path.strip('/')
        return path + '/' if path else ''

    def list_structured(self, path: str) -> List[FileEntry]:
        """
        list a directory with a depth-1 PROPFIND request
        """
        resp = self.transport.request("PROPFIND", self._dirpath(path), data=PROPFIND_BODY,
                                      headers={ "Depth": "1",
                                                "Content-Type": "application/xml; charset=utf-8" })
        if not (200 <= resp.status_code < 300):
            raise UnexpectedStorageResponse(f"PROPFIND returned unexpected status {resp.status_code}",
                                            resp.url, code=resp.status_code)
        ctype = resp.headers.get('Content-Type', '')
        if not is_structured(ctype, resp.content):
            raise UnexpectedStorageResponse("PROPFIND returned unstructured content ("+
                                            (ctype or "unknown type") + ")", resp.url,
                                            code=resp.status_code)
        return parse_multistatus(resp.content, path, self.basepath)

    def list_plain(self, path: str) -> List[FileEntry]:
        """
        list a directory by parsing the response to a plain GET
        """
        resp = self.transport.get(self._dirpath(path))
        return parse_listing(resp.content, resp.headers.get('Content-Type', ''), path, self.basepath)
