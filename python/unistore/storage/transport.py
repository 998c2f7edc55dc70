"""
The HTTP transport primitive used by the HTTP-based backends.  It issues textual and binary
requests (with optional byte ranges) through a :py:class:`requests.Session` and converts failure
responses into the exceptions defined in :py:mod:`unistore.storage.exceptions`.
"""
import logging
from collections.abc import Mapping
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from unistore.base.config import blab
from .exceptions import *

DEF_TIMEOUT = 30.0

def range_header(start: int, length: int=None) -> str:
    """
    return the value of an HTTP Range header covering ``length`` bytes beginning at ``start``.
    The end of the range is inclusive; if ``length`` is None, the range is open-ended.
    """
    if start < 0:
        raise ValueError("range_header(): negative start: "+str(start))
    if length is None:
        return f"bytes={start}-"
    if length <= 0:
        raise ValueError("range_header(): non-positive length: "+str(length))
    return f"bytes={start}-{start + length - 1}"

def join_url(base: str, path: str) -> str:
    """
    append a (percent-encoded) path to a base URL
    """
    path = quote(path.lstrip('/'), safe="/:@!$&'()*+,;=~")
    return base.rstrip('/') + '/' + path

class HTTPTransport:
    """
    a thin wrapper around a :py:class:`requests.Session` bound to one service.

    This class supports the following configuration parameters:

    ``timeout``
        (float) _optional_.  the number of seconds to wait for the server to respond (default: 30)
    ``verify``
        (bool|str) _optional_.  False to skip verification of the server's site certificate, or
        the path to a CA certificate bundle to verify it with (default: True)
    ``retries``
        (int) _optional_.  the number of times to retry a request that failed to connect (default: 0)
    """

    def __init__(self, baseurl: str, auth=None, config: Mapping=None, headers: Mapping=None,
                 log: logging.Logger=None):
        """
        initialize the transport
        :param str baseurl:  the base URL of the service; relative paths given to the request
                             methods are resolved against it.
        :param auth:         the authentication to attach to every request (e.g. a (user, pass)
                             tuple); None if none is needed
        :param dict config:  the configuration parameters (see class documentation)
        :param dict headers: headers to include in every request
        :param Logger log:   the Logger to use for messages
        """
        if config is None:
            config = {}
        if not log:
            log = logging.getLogger("unistore.transport")
        self.log = log
        self.baseurl = baseurl.rstrip('/')
        self.timeout = float(config.get('timeout', DEF_TIMEOUT))

        self.session = requests.Session()
        self.session.auth = auth
        if headers:
            self.session.headers.update(headers)
        verify = config.get('verify', True)
        if verify is not None:
            self.session.verify = verify
        retries = int(config.get('retries', 0))
        if retries > 0:
            self.session.mount("http://", HTTPAdapter(max_retries=retries))
            self.session.mount("https://", HTTPAdapter(max_retries=retries))

    def url_for(self, path: str) -> str:
        """
        return the full URL for a service-relative path
        """
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return join_url(self.baseurl, path)

    def request(self, method: str, path: str, headers: Mapping=None, data=None, stream: bool=False,
                params: Mapping=None, check: bool=True, **kw) -> requests.Response:
        """
        send a request and return the response.

        :param str method:  the HTTP method (GET, HEAD, PROPFIND, ...)
        :param str   path:  the service-relative path or an absolute URL
        :param dict headers: additional request headers
        :param data:        the request body
        :param bool stream: if True, the body is not read until the caller iterates over it
        :param bool check:  if True (default), raise an exception for an error status; otherwise,
                            the response is returned regardless of status
        :raises StorageCommError:  if the server could not be reached
        :raises StorageServiceError: if ``check`` is True and the server returned an error status
        """
        url = self.url_for(path)
        self.log.debug("%s %s", method, url)
        try:
            resp = self.session.request(method, url, headers=headers, data=data, params=params,
                                        stream=stream, timeout=self.timeout, **kw)
        except requests.RequestException as ex:
            self.log.error("%s %s: communication failure: %s", method, url, str(ex))
            raise StorageCommError(f"{method} {url}: communication failure: {str(ex)}", url,
                                   cause=ex) from ex

        blab(self.log, "%s %s => %d", method, url, resp.status_code)
        if check:
            self.check_status(resp, method, url)
        return resp

    def check_status(self, resp: requests.Response, method: str=None, ep: str=None) -> None:
        """
        raise the exception appropriate to an error status in the given response
        """
        code = resp.status_code
        if code < 400:
            return
        if ep is None:
            ep = resp.url
        text = None if method == "HEAD" else _safe_text(resp)

        if code >= 500:
            raise StorageServerError(code, ep, text)
        elif code == 404:
            raise StorageResourceNotFound(ep, resptext=text)
        elif code in (401, 403):
            raise StorageUserUnauthorized(ep, resptext=text, code=code)
        elif code == 405:
            raise MethodNotAllowed(method, ep, text)
        elif code == 416:
            raise RangeNotSatisfiable(ep, resptext=text)
        raise StorageClientError(f"{method or 'request'} {ep} failed: {code} {resp.reason}",
                                 code, ep, text)

    def get(self, path: str, start: int=None, length: int=None, **kw) -> requests.Response:
        """
        retrieve a resource, or a byte range of it if ``start`` is given
        """
        headers = dict(kw.pop('headers', None) or {})
        if start is not None:
            headers['Range'] = range_header(start, length)
        return self.request("GET", path, headers=headers, **kw)

    def head(self, path: str, **kw) -> requests.Response:
        return self.request("HEAD", path, **kw)

    def close(self):
        self.session.close()


def _safe_text(resp):
    try:
        return resp.text
    except (ValueError, requests.RequestException):
        return None
