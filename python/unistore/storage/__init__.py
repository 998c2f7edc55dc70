"""
Uniform access to files held in remote and local storage.

The main entry point is :py:class:`~unistore.storage.client.StorageClient`, a single facade for
browsing and reading files over WebDAV, S3-compatible object storage, SSH/SFTP, SMB, the local
filesystem, and the Hugging Face dataset hub.  Protocol-specific behavior lives in two places:
the connection adapters (:py:mod:`unistore.storage.adapters`), which normalize configuration,
paths, and display names, and the backend drivers (:py:mod:`unistore.storage.backends`), which
do the actual I/O.
"""
from .exceptions import *

try:
    from .version import __version__
except ImportError:
    __version__ = "(unset)"
