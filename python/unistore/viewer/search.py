"""
Text search over file content.

Two modes are provided:

*loaded-content search* (:py:meth:`SearchEngine.search_loaded`)
    finds every occurrence of a term in the text currently held by a
    :py:class:`~unistore.viewer.loader.StreamingContentLoader`, with exact line and column numbers
    (relative to the loader's starting line).

*approximate full-file search* (:py:meth:`SearchEngine.search_file`)
    for files too large to load, samples fixed-size windows spread evenly across the file--at most
    ``max_samples`` of them--and searches each.  Line numbers are estimates accumulated from the
    average line length observed in each window, and occurrences falling between windows are not
    found.  This is a deliberate trade of completeness for bounded time and memory; results carry
    ``approximate=True``.

Both modes match the term literally and ignore case.  Results are capped; a result whose cap was
reached before the search was complete is flagged as ``limited``.
"""
import re, codecs, logging
from collections import namedtuple
from collections.abc import Mapping
from typing import List

from unistore.base.config import merge_config
from unistore.storage.client import StorageClient
from unistore.storage.exceptions import StorageServiceError
from .loader import StreamingContentLoader

DEF_CONFIG = {
    "sample_size": 512 * 1024,
    "max_samples": 50,
    "max_results": 500,
    "max_loaded_results": 1000,
    "min_term_length": 2,
}

SearchMatch = namedtuple("SearchMatch", "line column match text offset")
SearchMatch.__doc__ = \
"""
one occurrence of a search term.

:ivar int line:    the 1-based line number (an estimate for approximate searches)
:ivar int column:  the 1-based column (in characters) where the match begins
:ivar str match:   the matched text as it appears in the file
:ivar str text:    the full text of the line containing the match
:ivar int offset:  the byte offset in the file of the start of the line, used to re-seek to it
"""

NavigationTarget = namedtuple("NavigationTarget", "line column start_line")
NavigationTarget.__doc__ = \
"""
where to scroll to show a match:  the line within the loaded content (1-based), the column, and
the (possibly estimated) file line number of the first loaded line
"""

class SearchResult:
    """
    the matches found by a search.

    :ivar list matches:     the :py:class:`SearchMatch` records, in file order
    :ivar bool limited:     True if the result cap was reached before the search was complete
    :ivar bool approximate: True if the search sampled the file (so line numbers are estimates
                            and some occurrences may have been missed)
    :ivar int samples:      the number of windows examined (approximate searches only)
    """

    def __init__(self, term: str, matches: List[SearchMatch]=None, limited: bool=False,
                 approximate: bool=False, samples: int=0):
        self.term = term
        self.matches = matches if matches is not None else []
        self.limited = limited
        self.approximate = approximate
        self.samples = samples

    def __len__(self):
        return len(self.matches)

    def __iter__(self):
        return iter(self.matches)

    def __getitem__(self, i):
        return self.matches[i]


def compile_term(term: str):
    """
    return a case-insensitive regular expression that matches the term literally
    """
    return re.compile(re.escape(term), re.IGNORECASE)

def _line_codec(encoding):
    """
    return the codec that measures the bytes of a line of text in the given encoding, and the
    number of byte-order-mark bytes that begin a file in that encoding.  Encoding with a
    BOM-writing codec would count a mark on every line.
    """
    try:
        name = codecs.lookup(encoding or 'utf-8').name
    except LookupError:
        return ('utf-8', 0)
    if name == 'utf-8-sig':
        return ('utf-8', len(codecs.BOM_UTF8))
    if name == 'utf-16':
        return ('utf-16-le', len(codecs.BOM_UTF16_LE))
    if name == 'utf-32':
        return ('utf-32-le', len(codecs.BOM_UTF32_LE))
    return (name, 0)

def _byte_len(text, codec):
    return len(text.encode(codec, errors='replace'))

def find_matches(text: str, regex, first_line: int=1, base_offset: int=0, encoding: str=None,
                 limit: int=None) -> (List[SearchMatch], bool):
    """
    find the matches of a compiled pattern in text, line by line.

    :param str text:         the text to search
    :param regex:            the compiled pattern
    :param int first_line:   the line number to assign to the first line of the text
    :param int base_offset:  the byte offset in the file of the start of the text
    :param str encoding:     the encoding of the file, used to compute byte offsets of lines
    :param int limit:        the maximum number of matches to return
    :return:  a tuple of the matches and a flag that is True if matches beyond the limit were dropped
    """
    out = []
    codec, bom = _line_codec(encoding)
    newline = _byte_len('\n', codec)
    # decoding from the start of a file drops its byte-order mark
    offset = base_offset + (bom if base_offset == 0 else 0)
    for i, line in enumerate(text.split('\n')):
        for m in regex.finditer(line):
            if limit is not None and len(out) >= limit:
                return (out, True)
            out.append(SearchMatch(first_line + i, m.start() + 1, m.group(0), line, offset))
        offset += _byte_len(line, codec) + newline
    return (out, False)


class SearchEngine:
    """
    the engine for searching file content read through a :py:class:`StorageClient`.

    This class supports the following configuration parameters:

    ``sample_size``
        (int) _optional_.  the number of bytes in each window sampled by an approximate search
        (default: 512 KiB)
    ``max_samples``
        (int) _optional_.  the maximum number of windows sampled (default: 50)
    ``max_results``
        (int) _optional_.  the maximum number of matches returned by an approximate search (default: 500)
    ``max_loaded_results``
        (int) _optional_.  the maximum number of matches returned by a loaded-content search
        (default: 1000)
    ``min_term_length``
        (int) _optional_.  terms shorter than this are not searched for (default: 2)
    """

    def __init__(self, client: StorageClient, config: Mapping=None, log: logging.Logger=None):
        if not log:
            log = logging.getLogger("unistore.viewer.search")
        self.log = log
        self.client = client
        self.cfg = merge_config(config, DEF_CONFIG)

    def _searchable(self, term):
        return bool(term) and len(term.strip()) >= int(self.cfg['min_term_length'])

    def search_loaded(self, content: str, term: str, start_line: int=1, base_offset: int=0,
                      encoding: str=None) -> SearchResult:
        """
        search text already in memory.

        :param str content:    the text to search
        :param str term:       the literal term to find
        :param int start_line: the line number of the first line of ``content``
        :param int base_offset: the byte offset in the file where ``content`` begins
        :param str encoding:   the file's encoding (for computing byte offsets)
        """
        if not self._searchable(term):
            return SearchResult(term)
        matches, dropped = find_matches(content, compile_term(term), start_line, base_offset,
                                        encoding, int(self.cfg['max_loaded_results']))
        return SearchResult(term, matches, limited=dropped)

    def sampling_interval(self, total_size: int) -> int:
        """
        return the distance in bytes between the starts of successive sample windows for a file
        of the given size:  the file size divided evenly among ``max_samples`` windows, but no
        less than the window size.
        """
        return max(total_size // int(self.cfg['max_samples']), int(self.cfg['sample_size']))

    def search_file(self, path: str, term: str, total_size: int=None) -> SearchResult:
        """
        search a whole file approximately by sampling windows spread across it.

        :param str path:   the path to the file
        :param str term:   the literal term to find
        :param int total_size:  the size of the file, if already known
        :raises StorageServiceError:  if every sample failed to be read
        """
        if not self._searchable(term):
            return SearchResult(term, approximate=True)
        if total_size is None:
            total_size = self.client.get_file_size(path)

        regex = compile_term(term)
        sample_size = int(self.cfg['sample_size'])
        max_samples = int(self.cfg['max_samples'])
        max_results = int(self.cfg['max_results'])
        interval = self.sampling_interval(total_size)

        matches = []
        position = 0
        approx_line = 1
        samples = 0
        dropped = False
        lasterr = None
        failures = 0
        while position < total_size and samples < max_samples and len(matches) < max_results:
            length = min(sample_size, total_size - position)
            samples += 1
            try:
                fc = self.client.get_file_content(path, position, length, total_size=total_size)
            except StorageServiceError as ex:
                self.log.warning("Failed to sample %s at offset %d: %s", path, position, str(ex))
                lasterr = ex
                failures += 1
                position += interval
                continue

            found, dropped = find_matches(fc.content, regex, approx_line, position, fc.encoding,
                                          max_results - len(matches))
            matches.extend(found)

            nlines = fc.content.count('\n') + 1
            avg_bytes_per_line = max(fc.size, 1) / nlines
            approx_line += int(interval // avg_bytes_per_line)
            position += interval

        if lasterr is not None and failures == samples:
            raise lasterr

        unsampled = position < total_size and samples < max_samples
        limited = len(matches) >= max_results and (unsampled or dropped)
        self.log.debug("Approximate search of %s for %r: %d matches in %d samples%s", path, term,
                       len(matches), samples, " (limited)" if limited else "")
        return SearchResult(term, matches, limited=limited, approximate=True, samples=samples)

    def search(self, loader: StreamingContentLoader, term: str, full_file: bool=False) -> SearchResult:
        """
        search an open file:  the loaded content, or--if ``full_file`` is True and the file is
        large--the whole file by sampling.
        """
        if full_file and loader.is_large:
            return self.search_file(loader.path, term, loader.total_size)
        return self.search_loaded(loader.content, term, loader.start_line, loader.cursor.position,
                                  loader.encoding)

    def navigate_to_match(self, loader: StreamingContentLoader, match: SearchMatch) -> NavigationTarget:
        """
        prepare the loader to display a match.  For a large file, a window of content around the
        match's offset is reloaded (unless the offset is already loaded) and a new estimated
        starting line number computed; for other files, the content is already loaded.
        """
        if not loader.is_large:
            return NavigationTarget(max(1, match.line - loader.start_line + 1), match.column,
                                    loader.start_line)

        if not (loader.cursor.position <= match.offset < loader.cursor.next_offset):
            loader.center_on(match.offset)
        line = line_at_offset(loader.content, match.offset - loader.cursor.position, loader.encoding,
                              loader.cursor.position)
        return NavigationTarget(line, match.column, loader.start_line)


def line_at_offset(content: str, offset: int, encoding: str=None, base_offset: int=0) -> int:
    """
    return the 1-based number of the line in ``content`` that contains the given byte offset
    (relative to the start of ``content``, which begins at ``base_offset`` in the file)
    """
    codec, bom = _line_codec(encoding)
    newline = _byte_len('\n', codec)
    pos = bom if base_offset == 0 else 0
    lines = content.split('\n')
    for i, line in enumerate(lines):
        pos += _byte_len(line, codec) + newline
        if offset < pos:
            return i + 1
    return len(lines)
