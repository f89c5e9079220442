"""
FCS TEXT segment tokenizer.

The TEXT segment is a run of keyword/value pairs separated by a delimiter
character, which is the first byte of the segment. A delimiter that appears
inside a keyword or value is escaped by doubling it.

    /$TOT/2/$PAR/2/$P1N/FSC-A/$P2N/a//b/

decodes to {"$TOT": "2", "$PAR": "2", "$P1N": "FSC-A", "$P2N": "a/b"}.

Bytes are decoded as Latin-1 so every byte value 0-255 survives unchanged
in the returned strings.
"""

import logging
from typing import Dict, List, Mapping, Optional

from cyto_workbench.fcs.errors import MalformedTextSegment

logger = logging.getLogger(__name__)


TEXT_ENCODING = "latin-1"

# Ordered mapping of uppercase keyword to raw value
TextSegment = Dict[str, str]


def tokenize(raw: str) -> List[str]:
    """
    Split a TEXT segment into tokens.

    The first character is the delimiter. A doubled delimiter is a literal
    delimiter inside the current token; a single one closes the token.

    Args:
        raw: Decoded TEXT segment including the leading delimiter

    Returns:
        List of tokens in file order (the final token may be empty)
    """
    delim = raw[0]
    tokens: List[str] = []
    current: List[str] = []
    i = 1
    n = len(raw)
    while i < n:
        ch = raw[i]
        if ch != delim:
            current.append(ch)
            i += 1
            continue
        if i + 1 < n and raw[i + 1] == delim:
            current.append(delim)
            i += 2
            continue
        tokens.append("".join(current))
        current = []
        i += 1
    tokens.append("".join(current))
    return tokens


def parse_text_segment(buf: bytes, text_start: int, text_end: int) -> TextSegment:
    """
    Parse the TEXT segment into an uppercase-keyed mapping.

    Keys sit at even token positions and are stripped and uppercased; each
    is paired with the following token. Later duplicates overwrite earlier
    ones, empty keys are skipped and an unpaired trailing token is dropped.

    Args:
        buf: Raw file bytes
        text_start: First byte of the segment
        text_end: Last byte of the segment (inclusive)

    Returns:
        Mapping of keyword to value

    Raises:
        MalformedTextSegment: If the range lies outside the buffer or is
            shorter than a delimiter plus one byte of content
    """
    if text_start < 0 or text_end >= len(buf) or text_end < text_start:
        raise MalformedTextSegment(
            f"TEXT segment {text_start}-{text_end} outside file of {len(buf)} bytes"
        )

    raw = bytes(buf[text_start:text_end + 1]).decode(TEXT_ENCODING)
    if len(raw) < 2:
        raise MalformedTextSegment("TEXT segment too short")

    tokens = tokenize(raw)
    text: TextSegment = {}
    for i in range(0, len(tokens) - 1, 2):
        key = tokens[i].strip().upper()
        if not key:
            continue
        text[key] = tokens[i + 1]

    logger.debug("Parsed TEXT segment: %d keywords (delimiter %r)", len(text), raw[0])
    return text


def get_keyword(text: Mapping[str, str], *keys: str) -> Optional[str]:
    """Return the value of the first keyword present, matching case-insensitively."""
    for key in keys:
        value = text.get(key.upper())
        if value is not None:
            return value
    return None


def build_text_segment(pairs: Mapping[str, str], delimiter: str = "/") -> bytes:
    """
    Encode keyword/value pairs as a TEXT segment.

    Delimiters inside keys or values are doubled. The segment starts and
    ends with the delimiter.
    """
    escaped = delimiter * 2
    parts = [delimiter]
    for key, value in pairs.items():
        parts.append(str(key).replace(delimiter, escaped))
        parts.append(delimiter)
        parts.append(str(value).replace(delimiter, escaped))
        parts.append(delimiter)
    return "".join(parts).encode(TEXT_ENCODING)


__all__ = [
    'TEXT_ENCODING',
    'TextSegment',
    'tokenize',
    'parse_text_segment',
    'get_keyword',
    'build_text_segment',
]
