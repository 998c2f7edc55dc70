"""
WebDAV-specific support:  parsing of directory listing responses
(:py:mod:`~unistore.storage.webdav.parser`) and detection of whether a server supports
PROPFIND-based listings (:py:mod:`~unistore.storage.webdav.capability`).
"""
