"""
Base classes and utilities shared by all of the unistore subsystems.

This module provides the root exception class, :py:class:`UniStoreException`, and the 
:py:mod:`~unistore.base.config` module for loading and merging configuration data.
"""

try:
    from .version import __version__
except ImportError:
    __version__ = "(unset)"

class UniStoreException(Exception):
    """
    the base exception for all errors raised by unistore code.  
    """

    def __init__(self, message: str=None, cause: Exception=None):
        """
        create the exception

        :param str message:    a description of the problem
        :param Exception cause:  a caught exception that represents the underlying cause
        """
        if not message:
            if cause:
                message = str(cause)
            else:
                message = "Unknown unistore error"
        super(UniStoreException, self).__init__(message)
        self.cause = cause
