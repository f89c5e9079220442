"""
Dataset metadata resolution from the FCS header and TEXT segment.

Resolves everything the event reader needs before touching the DATA
segment: event and parameter counts, the DATA byte range, the numeric
encoding and byte order, per-parameter descriptors, and the optional
spillover matrix.

Byte order convention:
    $BYTEORD values "1,2,3,4" and "1,2" (ascending byte significance)
    are read as LITTLE-endian; every other value, e.g. "4,3,2,1" or "2,1",
    is read as big-endian. This matches the FCS 3.1 standard. A missing
    $BYTEORD defaults to "1,2,3,4". Verify against a sample from the
    instrument in question before trusting decoded values.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional, Tuple

import numpy as np

from cyto_workbench.fcs.errors import (
    DataSegmentTooSmall,
    InvalidDataRange,
    MissingRequiredField,
    UnsupportedDataType,
)
from cyto_workbench.fcs.header import FCSHeader, parse_header
from cyto_workbench.fcs.text_segment import TextSegment, get_keyword, parse_text_segment

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_DATATYPE = "I"
DEFAULT_BYTEORD = "1,2,3,4"
DEFAULT_INTEGER_BITS = 16
MAX_INTEGER_BITS = 32

LITTLE_ENDIAN_BYTEORDS = frozenset({"1,2,3,4", "1,2"})

SPILLOVER_KEYS = ("SPILL", "$SPILL", "SPILLOVER", "$SPILLOVER")

_SPILL_SPLIT = re.compile(r"[,;]")
_INTEGER = re.compile(r"[+-]?[0-9]+")


# =============================================================================
# Enums and Data Classes
# =============================================================================

class DataType(Enum):
    """Numeric encoding of the DATA segment ($DATATYPE)."""
    FLOAT32 = "F"
    FLOAT64 = "D"
    INTEGER = "I"

    @classmethod
    def from_keyword(cls, value: str) -> "DataType":
        """Resolve a $DATATYPE value, raising UnsupportedDataType otherwise."""
        code = value.strip().upper()
        for member in cls:
            if member.value == code:
                return member
        raise UnsupportedDataType(f"Unsupported $DATATYPE: {value!r}", data_type=code)


@dataclass(frozen=True)
class ParameterDescriptor:
    """
    One measured channel.

    Attributes:
        index: 0-based column position in each DATA record
        label: Display name ($PnS, then $PnN, then "Pn")
        name: Detector name ($PnN) if present
        bit_width: Declared $PnB, None if absent or non-numeric
        range: Declared $PnR, None if absent or non-numeric
        byte_width: Bytes this channel occupies in each record
    """
    index: int
    label: str
    name: Optional[str] = None
    bit_width: Optional[int] = None
    range: Optional[int] = None
    byte_width: int = 2


@dataclass
class DatasetMeta:
    """
    Everything needed to locate and decode DATA records.

    Attributes:
        version: FCS version string from the header
        n_events: $TOT
        params: One descriptor per channel, in record order
        data_type: Numeric encoding
        little_endian: Byte order of multi-byte values
        data_start: First byte of the DATA segment
        data_end: Last byte of the DATA segment (inclusive)
        spillover: n_params x n_params matrix (row = target, column = source)
            seeded from the SPILL keyword, or None
        text: Full TEXT segment mapping
    """
    version: str
    n_events: int
    params: List[ParameterDescriptor]
    data_type: DataType
    little_endian: bool
    data_start: int
    data_end: int
    spillover: Optional[np.ndarray] = None
    text: TextSegment = field(default_factory=dict)

    @property
    def n_params(self) -> int:
        return len(self.params)

    @property
    def byte_widths(self) -> List[int]:
        return [p.byte_width for p in self.params]

    @property
    def bytes_per_event(self) -> int:
        return sum(self.byte_widths)

    @property
    def labels(self) -> List[str]:
        return [p.label for p in self.params]

    @property
    def data_byte_range(self) -> Tuple[int, int]:
        return (self.data_start, self.data_end)

    def param_index(self, label: str) -> int:
        """Find a channel by label or detector name (case-insensitive)."""
        wanted = label.strip().upper()
        for p in self.params:
            if p.label.upper() == wanted or (p.name and p.name.upper() == wanted):
                return p.index
        raise KeyError(label)


# =============================================================================
# Field Helpers
# =============================================================================

def _parse_int(value: Optional[str]) -> Optional[int]:
    """Parse a decimal integer keyword value, None if absent or malformed."""
    if value is None:
        return None
    stripped = value.strip()
    if not _INTEGER.fullmatch(stripped):
        return None
    return int(stripped)


def _required_positive(text: Mapping[str, str], key: str) -> int:
    value = _parse_int(text.get(key))
    if value is None or value <= 0:
        raise MissingRequiredField(
            f"Invalid {key} in FCS TEXT segment: {text.get(key)!r}", key=key
        )
    return value


def resolve_data_range(text: Mapping[str, str], header: FCSHeader) -> Tuple[int, int]:
    """
    Resolve the DATA segment byte range.

    $BEGINDATA/$ENDDATA win when present and non-zero; otherwise the
    header offsets are used.

    Raises:
        InvalidDataRange: If the resolved end does not lie beyond the start
            or the start is negative
    """
    start = _parse_int(text.get("$BEGINDATA")) or header.data_start
    end = _parse_int(text.get("$ENDDATA")) or header.data_end
    if start < 0 or end <= start:
        raise InvalidDataRange("Invalid DATA segment range", start=start, end=end)
    return start, end


def is_little_endian(byteord: Optional[str]) -> bool:
    """Map a $BYTEORD value to little-endian (True) or big-endian (False)."""
    value = (byteord if byteord is not None else DEFAULT_BYTEORD).strip().replace(" ", "")
    return value in LITTLE_ENDIAN_BYTEORDS


def bytes_for_param(data_type: DataType, bit_width: Optional[int]) -> int:
    """
    Bytes one value occupies in a DATA record.

    Floats are fixed width. Integers round $PnB up to the narrowest of
    1, 2 or 4 bytes; a missing $PnB is read as 16 bits.

    Raises:
        UnsupportedDataType: For integer widths outside 1-32 bits
    """
    if data_type is DataType.FLOAT32:
        return 4
    if data_type is DataType.FLOAT64:
        return 8

    bits = bit_width if bit_width is not None else DEFAULT_INTEGER_BITS
    if bits <= 0 or bits > MAX_INTEGER_BITS:
        raise UnsupportedDataType(
            "Unsupported integer bit width", data_type=data_type.value, bit_width=bits
        )
    if bits <= 8:
        return 1
    if bits <= 16:
        return 2
    return 4


def parse_spillover(text: Mapping[str, str], n_params: int) -> Optional[np.ndarray]:
    """
    Parse an optional SPILL/SPILLOVER keyword into an n_params square matrix.

    The keyword holds "n,name1,...,namen,v11,v12,...,vnn". The n x n block
    is placed by position (not by name) up to min(n, n_params); the
    diagonal is zero. Any malformed block is ignored and None returned.
    """
    raw = get_keyword(text, *SPILLOVER_KEYS)
    if not raw:
        return None

    parts = [p.strip() for p in _SPILL_SPLIT.split(raw)]
    parts = [p for p in parts if p]
    n = _parse_int(parts[0]) if parts else None
    if n is None or n <= 0:
        logger.debug("Ignoring spillover block with bad size: %r", parts[:1])
        return None

    values: List[float] = []
    for token in parts[1 + n:]:
        try:
            values.append(float(token))
        except ValueError:
            values.append(math.nan)
    if len(values) < n * n:
        logger.debug(
            "Ignoring spillover block: need %d values, found %d", n * n, len(values)
        )
        return None

    matrix = np.zeros((n_params, n_params), dtype=np.float64)
    m = min(n, n_params)
    for r in range(m):
        for c in range(m):
            v = values[r * n + c]
            if r != c and math.isfinite(v):
                matrix[r, c] = v
    return matrix


# =============================================================================
# Metadata Resolution
# =============================================================================

def resolve_metadata(buf: bytes, header: FCSHeader, text: TextSegment) -> DatasetMeta:
    """
    Build DatasetMeta from an already parsed header and TEXT segment.

    Raises:
        MissingRequiredField: $TOT or $PAR absent or not a positive integer
        InvalidDataRange: Empty or out-of-file DATA range
        UnsupportedDataType: Unknown $DATATYPE or integer width > 32 bits
        DataSegmentTooSmall: DATA segment shorter than $TOT records
    """
    n_events = _required_positive(text, "$TOT")
    n_params = _required_positive(text, "$PAR")

    data_start, data_end = resolve_data_range(text, header)
    if data_start >= len(buf):
        raise InvalidDataRange(
            f"DATA segment starts beyond end of file ({len(buf)} bytes)",
            start=data_start, end=data_end,
        )

    data_type = DataType.from_keyword(text.get("$DATATYPE") or DEFAULT_DATATYPE)
    little_endian = is_little_endian(text.get("$BYTEORD"))

    params: List[ParameterDescriptor] = []
    for i in range(1, n_params + 1):
        name = text.get(f"$P{i}N")
        short = text.get(f"$P{i}S")
        label = (short if short is not None else name if name is not None else f"P{i}").strip()
        bit_width = _parse_int(text.get(f"$P{i}B"))
        params.append(ParameterDescriptor(
            index=i - 1,
            label=label,
            name=name.strip() if name is not None else None,
            bit_width=bit_width,
            range=_parse_int(text.get(f"$P{i}R")),
            byte_width=bytes_for_param(data_type, bit_width),
        ))

    bytes_per_event = sum(p.byte_width for p in params)
    required = bytes_per_event * n_events
    actual = min(data_end, len(buf) - 1) - data_start + 1
    if actual < required:
        raise DataSegmentTooSmall(
            "DATA segment too small", required=required, actual=actual
        )

    meta = DatasetMeta(
        version=header.version,
        n_events=n_events,
        params=params,
        data_type=data_type,
        little_endian=little_endian,
        data_start=data_start,
        data_end=data_end,
        spillover=parse_spillover(text, n_params),
        text=text,
    )
    logger.info(
        "Resolved %s metadata: %d events x %d params, %s %s-endian, %d bytes/event",
        meta.version, n_events, n_params, data_type.name,
        "little" if little_endian else "big", bytes_per_event,
    )
    return meta


def decode_metadata(buf: bytes) -> DatasetMeta:
    """
    Parse header and TEXT segment and resolve dataset metadata.

    Args:
        buf: Complete file contents

    Returns:
        DatasetMeta for the file

    Raises:
        FCSError: Any container, TEXT, range or encoding error
    """
    header = parse_header(buf)
    text = parse_text_segment(buf, header.text_start, header.text_end)
    return resolve_metadata(buf, header, text)


__all__ = [
    'DataType',
    'ParameterDescriptor',
    'DatasetMeta',
    'LITTLE_ENDIAN_BYTEORDS',
    'SPILLOVER_KEYS',
    'resolve_data_range',
    'is_little_endian',
    'bytes_for_param',
    'parse_spillover',
    'resolve_metadata',
    'decode_metadata',
]
