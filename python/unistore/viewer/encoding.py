"""
Detection of the character encoding of a file's text from a bounded sample of its leading bytes.
"""
import codecs

import chardet

DEFAULT_ENCODING = "utf-8"
MIN_CONFIDENCE = 0.7

SMALL_FILE = 1024
MEDIUM_FILE = 100 * 1024
MEDIUM_SAMPLE = 4 * 1024
LARGE_SAMPLE = 8 * 1024

def sample_size_for(total_size: int) -> int:
    """
    return the number of leading bytes to sample to detect the encoding of a file of the
    given size:  the whole file if it is under 1 KiB, 4 KiB if under 100 KiB, and 8 KiB otherwise.
    """
    if total_size is None:
        return LARGE_SAMPLE
    if total_size < SMALL_FILE:
        return max(total_size, 0)
    if total_size < MEDIUM_FILE:
        return MEDIUM_SAMPLE
    return LARGE_SAMPLE

def normalize_encoding(name: str) -> str:
    """
    return the canonical Python codec name for an encoding name, or the default encoding if the
    name is not recognized.  Plain ASCII is widened to UTF-8, since later chunks of a file whose
    beginning is ASCII commonly contain multi-byte characters.
    """
    if not name:
        return DEFAULT_ENCODING
    try:
        name = codecs.lookup(name).name
    except LookupError:
        return DEFAULT_ENCODING
    if name == "ascii":
        return DEFAULT_ENCODING
    return name

def detect_encoding(sample: bytes, min_confidence: float=MIN_CONFIDENCE) -> str:
    """
    guess the encoding of the given bytes.  If the detector's confidence is below
    ``min_confidence``, UTF-8 is assumed.
    """
    if not sample:
        return DEFAULT_ENCODING
    if sample.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"

    result = chardet.detect(sample)
    if not result or not result.get('encoding') or (result.get('confidence') or 0) < min_confidence:
        return DEFAULT_ENCODING
    return normalize_encoding(result['encoding'])

def decode(data: bytes, encoding: str=DEFAULT_ENCODING) -> str:
    """
    decode bytes to text, substituting a replacement character for undecodable bytes (as occur
    where a chunk boundary splits a multi-byte character)
    """
    try:
        return data.decode(encoding or DEFAULT_ENCODING, errors='replace')
    except LookupError:
        return data.decode(DEFAULT_ENCODING, errors='replace')
