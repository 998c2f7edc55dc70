"""
Storage backend drivers, one per protocol.

Drivers are imported on demand so that the third-party library a protocol depends on (boto3,
paramiko, smbprotocol) is loaded only when a connection of that type is made.
"""
import importlib

from unistore.base.config import ConfigurationException
from .base import StorageBackend

_drivers = {
    "webdav":      ("unistore.storage.backends.webdav",      "WebDAVBackend"),
    "local":       ("unistore.storage.backends.local",       "LocalBackend"),
    "oss":         ("unistore.storage.backends.oss",         "OSSBackend"),
    "ssh":         ("unistore.storage.backends.ssh",         "SSHBackend"),
    "smb":         ("unistore.storage.backends.smb",         "SMBBackend"),
    "huggingface": ("unistore.storage.backends.huggingface", "HuggingFaceBackend"),
}

def get_backend_class(protocol: str):
    """
    return the driver class for the given protocol identifier (as reported by the protocol's
    adapter)
    :raises ConfigurationException:  if no driver is registered for the protocol
    """
    if protocol not in _drivers:
        raise ConfigurationException("No storage driver available for protocol: "+str(protocol),
                                     param="type")
    modname, clsname = _drivers[protocol]
    return getattr(importlib.import_module(modname), clsname)
