"""
a command-line interface for browsing and reading files in storage.  The :py:func:`main` function
provides the implementation; it is called by the ``unistore`` script.
"""
import sys, os, re, logging
from argparse import ArgumentParser
from collections.abc import Mapping
from urllib.parse import urlparse

from unistore.base import config as cfgmod, UniStoreException
from unistore.base.config import ConfigurationException
from unistore.storage.client import StorageClient
from unistore.storage.cache import ListingCache
from unistore.storage.download import LoggingProgressSink
from unistore.storage.exceptions import StorageException, DownloadCancelled
from unistore.storage.models import ListOptions, sort_entries
from unistore.storage.store import InMemoryConnectionStore
from unistore.viewer.loader import StreamingContentLoader
from unistore.viewer.search import SearchEngine

prog = re.sub(r'\.py$', '', os.path.basename(sys.argv[0]))

class Failure(UniStoreException):
    """
    an exception indicating that the command failed and the program should exit with a
    particular exit code
    """
    def __init__(self, message: str, exitcode: int=1, cause: Exception=None):
        super(Failure, self).__init__(message, cause)
        self.exitcode = exitcode

SCHEMES = {
    "http":    "webdav",
    "https":   "webdav",
    "webdav":  "webdav",
    "webdavs": "webdav",
    "dav":     "webdav",
    "davs":    "webdav",
    "file":    "local",
    "oss":     "oss",
    "s3":      "oss",
    "ssh":     "ssh",
    "sftp":    "ssh",
    "smb":     "smb",
    "hf":      "huggingface",
}

def define_options(progname):
    """
    return an ArgumentParser instance that is configured with options
    for the command-line interface.
    """
    description = "browse and read files held in WebDAV, S3-compatible, SSH, SMB, local, or " \
                  "Hugging Face storage"
    epilog = "STORAGE is either a connection URL (e.g. https://dav.example.com/files, " \
             "oss://bucket/prefix, file:///data, hf://org) or the name of a connection in " \
             "the configuration file's 'connections' section."

    parser = ArgumentParser(progname, None, description, epilog)

    parser.add_argument('-c', '--config-file', type=str, dest='cfgfile', metavar='FILE',
                        help="a YAML or JSON file containing the configuration to use")
    parser.add_argument('-u', '--user', type=str, dest='username', metavar='USER',
                        help="the user name (or access key) to connect with")
    parser.add_argument('-p', '--password', type=str, dest='password', metavar='PASS',
                        help="the password (or secret key, or token) to connect with")
    parser.add_argument('-l', '--logfile', action='store', dest='logfile', type=str, metavar='FILE',
                        help="write messages that normally go to standard error to FILE as well.  "+
                             "If -q is also specified, the messages will only go to the logfile")
    parser.add_argument('-v', '--verbose', action='store_true', dest='verbose',
                        help="print more (debug) messages to standard error and/or the log file")
    parser.add_argument('-q', '--quiet', action='store_true', dest='quiet',
                        help="suppress all error and warning messages to standard error")

    subparsers = parser.add_subparsers(title="commands", dest="cmd", metavar="CMD")

    p = subparsers.add_parser("ls", help="list the contents of a directory")
    p.add_argument('storage', metavar='STORAGE', help="the storage to connect to")
    p.add_argument('path', metavar='PATH', nargs='?', default='',
                   help="the directory to list (default: the root)")
    p.add_argument('-s', '--sort', choices=["name", "size", "modified"], dest='sort_by',
                   help="the field to sort by (default: the storage's preferred order)")
    p.add_argument('-r', '--reverse', action='store_true', dest='reverse',
                   help="sort in descending order")
    p.add_argument('-n', '--page-size', type=int, dest='page_size', metavar='N',
                   help="request at most N entries")
    p.add_argument('-m', '--marker', type=str, dest='marker', metavar='MARKER',
                   help="continue a paged listing from MARKER")
    p.add_argument('-F', '--find', type=str, dest='find', metavar='TERM',
                   help="search the storage for items matching TERM instead of listing PATH "+
                        "(not supported by all storage types)")

    p = subparsers.add_parser("cat", help="print the text of a file")
    p.add_argument('storage', metavar='STORAGE', help="the storage to connect to")
    p.add_argument('path', metavar='PATH', help="the file to print")
    p.add_argument('--start', type=int, dest='start', metavar='N',
                   help="print starting at byte offset N")
    p.add_argument('--length', type=int, dest='length', metavar='N',
                   help="print at most N bytes")
    p.add_argument('--percent', type=float, dest='percent', metavar='PCT',
                   help="for a large file, print one chunk starting PCT percent of the way through")

    p = subparsers.add_parser("size", help="print the size of a file in bytes")
    p.add_argument('storage', metavar='STORAGE', help="the storage to connect to")
    p.add_argument('path', metavar='PATH', help="the file to query")

    p = subparsers.add_parser("get", help="download a file")
    p.add_argument('storage', metavar='STORAGE', help="the storage to connect to")
    p.add_argument('path', metavar='PATH', help="the file to download")
    p.add_argument('-o', '--output', type=str, dest='output', metavar='FILE',
                   help="the local file to save to (default: the file's name in the "+
                        "download directory)")

    p = subparsers.add_parser("search", help="search the text of a file")
    p.add_argument('storage', metavar='STORAGE', help="the storage to connect to")
    p.add_argument('path', metavar='PATH', help="the file to search")
    p.add_argument('term', metavar='TERM', help="the (literal, case-insensitive) text to find")
    p.add_argument('-a', '--approximate', action='store_true', dest='approximate',
                   help="for a large file, sample the whole file rather than searching only "+
                        "its first chunk")

    return parser

def connection_config(storage: str, cfg: Mapping, username: str=None, password: str=None) -> dict:
    """
    return the connection configuration for a STORAGE argument:  a saved connection from the
    configuration's ``connections`` section (matched by name or URL), or one built from a
    connection URL.  Credentials given on the command line override saved ones.
    """
    store = InMemoryConnectionStore(cfg.get('connections', []))
    conn = store.find(name=storage)
    if not conn:
        for saved in store.list():
            if saved.get('url') == storage:
                conn = saved
                break

    if not conn:
        conn = config_from_url(storage)
    else:
        conn.pop('id', None)
        conn.pop('last_connected', None)

    if username:
        conn['username'] = username
    if password:
        conn['password'] = password
    return conn

def config_from_url(url: str) -> dict:
    """
    build a connection configuration from a connection URL, using its scheme to select the
    storage type
    """
    parsed = urlparse(url)
    ctype = SCHEMES.get(parsed.scheme.lower())
    if not ctype:
        raise Failure(f"{url}: not a recognized storage name or connection URL")

    if ctype == "local":
        return { "type": ctype, "root_path": parsed.path or '/' }
    if ctype == "oss":
        host = parsed.netloc.rsplit('@', 1)[-1]
        out = { "type": ctype, "bucket": (host + parsed.path).strip('/') }
        if parsed.username:
            out['username'] = parsed.username
        return out
    if ctype == "huggingface":
        org = (parsed.netloc + parsed.path).strip('/')
        return { "type": ctype, "organization": org or None }
    return { "type": ctype, "url": url }

def main(progname, args):
    """
    connect to the requested storage and carry out the requested command
    """
    parser = define_options(progname)
    opts = parser.parse_args(args)
    if not opts.cmd:
        parser.print_usage(sys.stderr)
        raise Failure("no command given", 1)

    level = (opts.verbose and logging.DEBUG) or logging.INFO
    cfgmod.configure_log(opts.logfile, level,
                         "%(asctime)s " + progname + ".%(name)s %(levelname)s: %(message)s",
                         addstderr=not opts.quiet)
    log = logging.getLogger(progname)

    cfg = {}
    if opts.cfgfile:
        cfg = read_config(opts.cfgfile)

    cache = ListingCache(cfg.get('cache'))
    client = StorageClient(cfg, cache, LoggingProgressSink(log.getChild("download")),
                           log.getChild("client"))
    try:
        connconf = connection_config(opts.storage, cfg, opts.username, opts.password)
        if not client.connect(connconf):
            raise Failure(f"{opts.storage}: failed to connect", 2)

        if opts.cmd == "ls":
            do_ls(client, opts)
        elif opts.cmd == "cat":
            do_cat(client, opts, cfg.get('streaming'))
        elif opts.cmd == "size":
            print(client.get_file_size(opts.path))
        elif opts.cmd == "get":
            do_get(client, opts)
        elif opts.cmd == "search":
            do_search(client, opts, cfg.get('streaming'), cfg.get('search'))

    except ConfigurationException as ex:
        raise Failure(str(ex), 1, ex) from ex
    except DownloadCancelled as ex:
        raise Failure(str(ex), 4, ex) from ex
    except StorageException as ex:
        raise Failure(f"{opts.cmd} failed: {str(ex)}", 3, ex) from ex
    finally:
        client.disconnect()

def do_ls(client, opts):
    if opts.find:
        if not client.supports_search:
            raise Failure(f"{client.display_name}: storage does not support searching", 1)
        listing = client.search_directory(opts.find, ListOptions(page_size=opts.page_size))
    else:
        listing = client.list_directory(opts.path, ListOptions(page_size=opts.page_size,
                                                               marker=opts.marker))

    sort = client.default_sort_options
    sort_by = opts.sort_by or sort.sort_by
    sort_order = "desc" if opts.reverse else (sort.sort_order if not opts.sort_by else "asc")
    for entry in sort_entries(listing.files, sort_by, sort_order):
        print("%s %12d  %s  %s" % ("d" if entry.is_dir else "-", entry.size,
                                    entry.modified.strftime("%Y-%m-%d %H:%M"),
                                    entry.name + ("/" if entry.is_dir else "")))
    if listing.has_more:
        print(f"(more entries available; continue with --marker {listing.next_marker})",
              file=sys.stderr)

def do_cat(client, opts, config=None):
    if opts.start is not None or opts.length is not None:
        fc = client.get_file_content(opts.path, opts.start or 0, opts.length)
        sys.stdout.write(fc.content)
        return

    loader = StreamingContentLoader(client, opts.path, config)
    try:
        loader.open()
        if opts.percent is not None:
            loader.jump_to_percentage(opts.percent)
            sys.stdout.write(loader.content)
            return
        sys.stdout.write(loader.content)
        while loader.has_more:
            sys.stdout.write(loader.load_more())
    finally:
        loader.close()

def do_get(client, opts):
    savepath = client.download_file_with_progress(opts.path, savepath=opts.output)
    print(savepath)

def do_search(client, opts, streamcfg=None, searchcfg=None):
    loader = StreamingContentLoader(client, opts.path, streamcfg)
    engine = SearchEngine(client, searchcfg)
    try:
        loader.open()
        result = engine.search(loader, opts.term, full_file=opts.approximate)
    finally:
        loader.close()

    for m in result:
        print("%s%d:%d: %s" % ("~" if result.approximate else "", m.line, m.column, m.text))
    if result.limited:
        print(f"(results limited to the first {len(result)} matches)", file=sys.stderr)

def read_config(filepath):
    """
    read the configuration from a file having the given filepath

    :except Failure:  if the contents contains syntax or format errors, or the file cannot be read
    """
    try:
        return cfgmod.load_from_file(filepath)
    except EnvironmentError as ex:
        raise Failure("problem reading config file, {0}: {1}".format(filepath, ex.strerror)) from ex
    except ConfigurationException as ex:
        raise Failure("Config parsing error: "+str(ex), 3, ex) from ex
