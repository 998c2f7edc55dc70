"""
Support for viewing text files held in storage:  character encoding detection, progressive
loading of large files, and searching file content.
"""
try:
    from .version import __version__
except ImportError:
    __version__ = "(unset)"
