"""
FCS fixed header parsing.

The first 58 bytes of an FCS file carry the version string and the byte
offsets of the TEXT, DATA and ANALYSIS segments:

    Bytes   Field
    0-5     Version ("FCS3.0", "FCS3.1", ...)
    6-9     Blank
    10-17   TEXT start      (8 chars, right-justified ASCII decimal)
    18-25   TEXT end
    26-33   DATA start
    34-41   DATA end
    42-49   ANALYSIS start
    50-57   ANALYSIS end

All offsets are inclusive byte positions from the start of the file.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from cyto_workbench.fcs.errors import MalformedHeader

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

HEADER_SIZE = 58
FCS_MAGIC = "FCS"

VERSION_SLICE = slice(0, 6)
TEXT_START_SLICE = slice(10, 18)
TEXT_END_SLICE = slice(18, 26)
DATA_START_SLICE = slice(26, 34)
DATA_END_SLICE = slice(34, 42)
ANALYSIS_START_SLICE = slice(42, 50)
ANALYSIS_END_SLICE = slice(50, 58)

_DIGITS = re.compile(r"[0-9]+")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class FCSHeader:
    """
    Decoded FCS header.

    Attributes:
        version: Version string with padding removed (e.g. "FCS3.1")
        text_start: First byte of the TEXT segment
        text_end: Last byte of the TEXT segment (inclusive)
        data_start: First byte of the DATA segment (0 if deferred to TEXT)
        data_end: Last byte of the DATA segment (0 if deferred to TEXT)
        analysis_start: First byte of the ANALYSIS segment (0 if absent)
        analysis_end: Last byte of the ANALYSIS segment (0 if absent)
    """
    version: str
    text_start: int
    text_end: int
    data_start: int = 0
    data_end: int = 0
    analysis_start: int = 0
    analysis_end: int = 0

    @property
    def has_analysis(self) -> bool:
        """True if the header declares a non-empty ANALYSIS segment."""
        return self.analysis_end > self.analysis_start


# =============================================================================
# Parsing
# =============================================================================

def _parse_offset(raw: str, field_name: str, required: bool) -> int:
    """
    Parse one 8-character offset field.

    Required fields must hold a decimal integer. Optional fields may be
    blank, which FCS 3.x writers use when the real offset lives in TEXT;
    a blank optional field reads as 0.
    """
    value: Optional[int] = None
    stripped = raw.strip()
    if stripped:
        if _DIGITS.fullmatch(stripped):
            value = int(stripped)
    elif not required:
        return 0

    if value is None or value < 0:
        raise MalformedHeader(
            f"Header field {field_name} is not a non-negative integer: {raw!r}"
        )
    return value


def parse_header(buf: bytes) -> FCSHeader:
    """
    Parse the fixed 58-byte FCS header.

    Args:
        buf: Raw file bytes (at least the first 58)

    Returns:
        FCSHeader with decoded offsets

    Raises:
        MalformedHeader: If the buffer is too short, the FCS magic is
            missing, an offset field is not numeric, or text_end does not
            lie beyond text_start
    """
    if len(buf) < HEADER_SIZE:
        raise MalformedHeader(
            f"FCS header too short ({len(buf)} bytes, need {HEADER_SIZE})"
        )

    head = bytes(buf[:HEADER_SIZE]).decode("latin-1")
    version = head[VERSION_SLICE].strip()
    if not version.startswith(FCS_MAGIC):
        raise MalformedHeader(f"Not an FCS file (missing '{FCS_MAGIC}' magic)")

    text_start = _parse_offset(head[TEXT_START_SLICE], "TEXT start", required=True)
    text_end = _parse_offset(head[TEXT_END_SLICE], "TEXT end", required=True)
    if text_end <= text_start:
        raise MalformedHeader(
            f"Invalid TEXT segment range in FCS header ({text_start}-{text_end})"
        )

    header = FCSHeader(
        version=version,
        text_start=text_start,
        text_end=text_end,
        data_start=_parse_offset(head[DATA_START_SLICE], "DATA start", required=False),
        data_end=_parse_offset(head[DATA_END_SLICE], "DATA end", required=False),
        analysis_start=_parse_offset(head[ANALYSIS_START_SLICE], "ANALYSIS start", required=False),
        analysis_end=_parse_offset(head[ANALYSIS_END_SLICE], "ANALYSIS end", required=False),
    )
    logger.debug(
        "Parsed %s header: TEXT %d-%d, DATA %d-%d",
        header.version, header.text_start, header.text_end,
        header.data_start, header.data_end,
    )
    return header


def build_header(
    text_start: int,
    text_end: int,
    data_start: int = 0,
    data_end: int = 0,
    analysis_start: int = 0,
    analysis_end: int = 0,
    version: str = "FCS3.1",
) -> bytes:
    """
    Encode a 58-byte FCS header.

    Offsets that do not fit in 8 characters are written as zero, which
    defers them to $BEGINDATA/$ENDDATA as the FCS 3.x standard allows.
    """
    def field(value: int) -> str:
        text = str(value)
        return text.rjust(8) if len(text) <= 8 else "0".rjust(8)

    head = (
        version.ljust(6)[:6]
        + " " * 4
        + field(text_start)
        + field(text_end)
        + field(data_start)
        + field(data_end)
        + field(analysis_start)
        + field(analysis_end)
    )
    return head.encode("latin-1")


__all__ = [
    'HEADER_SIZE',
    'FCS_MAGIC',
    'FCSHeader',
    'parse_header',
    'build_header',
]
