"""
Customized exceptions that allow code to handle error conditions by kind.

Callers should distinguish failures by the exception class rather than by inspecting
messages:  a :py:class:`StorageCommError` means the backend could not be reached, a
:py:class:`ListingParseError` means it responded but could not be understood, and so on.
"""
from unistore.base import UniStoreException
from unistore.base.config import ConfigurationException

__all__ = [ "ConfigurationException", "StorageException", "NotConnected", "StorageServiceError",
            "StorageCommError", "StorageServerError", "UnexpectedStorageResponse", "StorageClientError",
            "StorageResourceNotFound", "StorageUserUnauthorized", "MethodNotAllowed",
            "RangeNotSatisfiable", "ListingParseError", "SizeUnavailable", "DownloadCancelled" ]

class StorageException(UniStoreException):
    """
    an exception indicating a problem interacting with a storage backend.

    This class serves as a base class for all run-time (i.e. non-configuration) storage errors.
    """

    def __init__(self, message: str=None, cause: Exception=None):
        if not message:
            message = "Unspecified problem accessing storage"
        super(StorageException, self).__init__(message, cause)


class NotConnected(StorageException):
    """
    an operation requiring a live connection was attempted on a client that is not connected.
    """

    def __init__(self, protocol: str=None, message: str=None):
        if not message:
            message = "Storage not connected"
            if protocol:
                message = f"{protocol} storage not connected"
        super(NotConnected, self).__init__(message)
        self.protocol = protocol


class StorageServiceError(StorageException):
    """
    an exception indicating an error occurred while accessing a storage service endpoint.

    This class serves as a base class for more specific service access errors.
    """

    def __init__(self, message: str=None, ep: str=None, code: int=0, resptext: str=None,
                 cause: Exception=None):
        """
        create the exception

        :param str message:  an explanation of the cause of the error
        :param str ep:       the service endpoint that was being accessed
        :param int code:     the HTTP (or HTTP-like) status code that was returned (if the service responded)
        :param str resptext: the erroneous response body that was returned, as text (if service responded)
        """
        if not message:
            message = "Error accessing storage service"
            if ep:
                message += f" at {ep}"
            if code:
                message += f" ({str(code)})"
        super(StorageServiceError, self).__init__(message, cause)
        self.ep = ep
        self.code = code or 0
        self.response = resptext


class StorageCommError(StorageServiceError):
    """
    an error indicating a failure communicating with the remote storage service.  This error
    typically covers network related errors, like failures to connect, dropped connections, DNS
    errors, timeouts, etc.  Typically, the remote service did not get a chance to respond.
    """

    def __init__(self, message: str=None, ep: str=None, cause: Exception=None):
        if not message:
            message = "Storage service communication failure"
            if ep:
                message += f" while accessing {ep}"
        super(StorageCommError, self).__init__(message, ep, cause=cause)


class StorageServerError(StorageServiceError):
    """
    an error indicating a server-side error (i.e. code >= 500) during a request to the remote
    storage service.
    """

    def __init__(self, code: int=0, ep: str=None, resptext: str=None, message: str=None):
        if not message:
            message = "Unexpected storage server error"
            if ep:
                message += f" while accessing {ep}"
            if code:
                message += f": HTTP code: {str(code)}"
        super(StorageServerError, self).__init__(message, ep, code, resptext)


class UnexpectedStorageResponse(StorageServerError):
    """
    an error that indicates that the remote service responded with unexpected or unusable
    content.  The code may reflect a successful operation.
    """

    def __init__(self, message: str=None, ep: str=None, resptext: str=None, code: int=0):
        if not message:
            message = "Unexpected content returned from storage service"
            if ep:
                message += f" while accessing {ep}"
        super(UnexpectedStorageResponse, self).__init__(code, ep, resptext, message)


class StorageClientError(StorageServiceError):
    """
    an error indicating a client-side error (i.e. 400 <= code < 500), such as a request for a
    resource that does not exist or a method the server does not support.
    """

    def __init__(self, message: str=None, code: int=0, ep: str=None, resptext: str=None):
        if not message:
            message = "Bad request made to storage service"
            if code:
                message += f" ({str(code)})"
            if ep:
                message += f" at {ep}"
        super(StorageClientError, self).__init__(message, ep, code, resptext)


class StorageResourceNotFound(StorageClientError):
    """
    the requested file or directory does not exist (typically a 404 response).
    """

    def __init__(self, ep: str=None, message: str=None, resptext: str=None, code: int=404):
        if not message:
            message = "Requested resource not found"
            if ep:
                message += f": {ep}"
        super(StorageResourceNotFound, self).__init__(message, code, ep, resptext)


class StorageUserUnauthorized(StorageClientError):
    """
    the supplied credentials were rejected or do not permit the requested access (typically a
    401 or 403 response).
    """

    def __init__(self, ep: str=None, message: str=None, resptext: str=None, code: int=401):
        if not message:
            message = "User is not authorized for access as requested"
            if ep:
                message += f": {ep}"
        super(StorageUserUnauthorized, self).__init__(message, code, ep, resptext)


class MethodNotAllowed(StorageClientError):
    """
    the server rejected the request method (a 405 response).  Servers that only partially
    implement WebDAV typically answer PROPFIND this way.
    """

    def __init__(self, method: str=None, ep: str=None, resptext: str=None, code: int=405):
        message = "Method not allowed"
        if method:
            message = f"{method} method not allowed"
        if ep:
            message += f": {ep}"
        super(MethodNotAllowed, self).__init__(message, code, ep, resptext)
        self.method = method


class RangeNotSatisfiable(StorageClientError):
    """
    the server rejected a byte-range request (a 416 response).
    """

    def __init__(self, ep: str=None, message: str=None, resptext: str=None, code: int=416):
        if not message:
            message = "Requested byte range not satisfiable"
            if ep:
                message += f": {ep}"
        super(RangeNotSatisfiable, self).__init__(message, code, ep, resptext)


class ListingParseError(StorageException):
    """
    the server responded to a directory listing request, but the response body could not be
    interpreted as a multistatus document, an HTML index, or a JSON array.
    """

    def __init__(self, message: str=None, path: str=None, cause: Exception=None):
        if not message:
            message = "Unable to interpret directory listing"
            if path:
                message += f" for {path}"
        super(ListingParseError, self).__init__(message, cause)
        self.path = path


class SizeUnavailable(StorageException):
    """
    a metadata request succeeded but did not report the size of the file.
    """

    def __init__(self, path: str=None, message: str=None):
        if not message:
            message = "Backend did not report a file size"
            if path:
                message += f" for {path}"
        super(SizeUnavailable, self).__init__(message)
        self.path = path


class DownloadCancelled(StorageException):
    """
    a progress-tracked download was cancelled at the caller's request.  This is a distinct
    completion state rather than a failure.
    """

    def __init__(self, filename: str=None, message: str=None):
        if not message:
            message = "Download cancelled"
            if filename:
                message += f": {filename}"
        super(DownloadCancelled, self).__init__(message)
        self.filename = filename
