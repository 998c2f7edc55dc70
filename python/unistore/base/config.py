"""
Utilities for loading, merging, and querying configuration data.

Configuration throughout unistore is a plain (possibly nested) dictionary.  Classes that need 
configuration accept a ``Mapping`` at construction and document the parameters they look for.  
Defaults are combined with user-provided values via :py:func:`merge_config`.
"""
import os, sys, json, logging
from collections.abc import Mapping
from copy import deepcopy

import yaml

from . import UniStoreException

BLAB = logging.DEBUG - 1
NORMAL = logging.INFO - 5
global_logfile = None

class ConfigurationException(UniStoreException):
    """
    an exception indicating missing or inconsistent configuration data.  It is raised before any 
    attempt is made to access a remote service.
    """

    def __init__(self, message: str=None, param: str=None, cause: Exception=None):
        """
        create the exception

        :param str message:  a description of the problem
        :param str   param:  the name of the configuration parameter that is missing or bad
        """
        if not message:
            message = "Configuration error"
            if param:
                message += f": bad or missing parameter, {param}"
        super(ConfigurationException, self).__init__(message, cause)
        self.param = param

def blab(log, msg, *args, **kwargs):
    """
    log a verbose message at the :py:data:`BLAB` level, which is lower than DEBUG.  This is 
    intended for messages that would appear voluminously (e.g. once per directory entry).
    """
    log.log(BLAB, msg, *args, **kwargs)

def merge_config(primary: Mapping, defconf: Mapping) -> dict:
    """
    merge two configurations, returning a new dictionary.  Values in ``primary`` override those
    in ``defconf``; nested dictionaries are merged recursively.

    :param dict primary:  the configuration whose values take precedence
    :param dict defconf:  the default values 
    """
    out = deepcopy(defconf) if defconf else {}
    if not primary:
        return out
    for key, val in primary.items():
        if isinstance(val, Mapping) and isinstance(out.get(key), Mapping):
            out[key] = merge_config(val, out[key])
        else:
            out[key] = deepcopy(val)
    return out

def hget(config: Mapping, path: str, default=None):
    """
    return the value in a nested configuration given its dot-delimited hierarchical name
    (e.g. "streaming.chunk_size").  ``default`` is returned if any part of the path does not 
    exist.
    """
    node = config
    for name in path.split('.'):
        if not isinstance(node, Mapping) or name not in node:
            return default
        node = node[name]
    return node

def load_from_file(configfile: str) -> dict:
    """
    read the configuration from the given file.  The format (YAML or JSON) is determined 
    by the file extension; YAML is assumed if the extension is not ".json".

    :raises ConfigurationException:  if the file contents cannot be parsed
    :raises OSError:  if the file cannot be opened
    """
    with open(configfile) as fd:
        try:
            if configfile.endswith('.json'):
                data = json.load(fd)
            else:
                data = yaml.safe_load(fd)
        except (ValueError, yaml.YAMLError) as ex:
            raise ConfigurationException(f"{configfile}: config parsing error: {str(ex)}",
                                         cause=ex) from ex
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationException(f"{configfile}: configuration is not a dictionary")
    return data

def configure_log(logfile: str=None, level: int=None, format: str=None, config: Mapping=None,
                  addstderr: bool=False):
    """
    configure the root logger to write messages to a file and, optionally, to standard error.

    :param str  logfile:  the path of the file to write messages to; if not given, the ``logfile``
                          config parameter (resolved against ``logdir``) is used.  
    :param int    level:  the minimum level to record; defaults to the ``loglevel`` config 
                          parameter or DEBUG.
    :param str   format:  the log message format
    :param dict  config:  configuration that may include ``logfile``, ``logdir``, and ``loglevel``
    :param bool addstderr:  if True, messages will also be written to standard error
    """
    global global_logfile
    if not config:
        config = {}
    if not logfile:
        logfile = config.get('logfile')
    if logfile and not os.path.isabs(logfile) and config.get('logdir'):
        logfile = os.path.join(config['logdir'], logfile)
    if level is None:
        level = config.get('loglevel', logging.DEBUG)
    if not format:
        format = "%(asctime)s %(name)s %(levelname)s: %(message)s"

    rootlog = logging.getLogger()
    rootlog.setLevel(level)
    if logfile:
        hdlr = logging.FileHandler(logfile)
        hdlr.setFormatter(logging.Formatter(format))
        hdlr.setLevel(level)
        rootlog.addHandler(hdlr)
        global_logfile = logfile

    if addstderr:
        hdlr = logging.StreamHandler(sys.stderr)
        hdlr.setFormatter(logging.Formatter("%(name)s %(levelname)s: %(message)s"))
        hdlr.setLevel(level)
        rootlog.addHandler(hdlr)

    if not rootlog.handlers:
        rootlog.addHandler(logging.NullHandler())
