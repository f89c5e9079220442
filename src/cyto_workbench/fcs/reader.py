"""
Event record reader for the FCS DATA segment.

Each event is a fixed-width record; channel p of event e starts at

    data_start + e * bytes_per_event + sum(byte_width[0:p])

Two decode modes share that layout:

    Preview: a deterministic, evenly spaced subset of at most
             preview_cap events, decoded at load time.
    Full:    every event, decoded in chunks. Only the background apply
             job runs this mode.

Records are decoded with a numpy structured dtype, so a whole chunk of
events is unpacked in one vectorized call. Decoded channels are float32.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import numpy as np

from cyto_workbench.fcs.metadata import DataType, DatasetMeta

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_PREVIEW_CAP = 10_000
DEFAULT_CHUNK_SIZE = 8192

# Storage type for decoded channel values
CHANNEL_DTYPE = np.float32

_STRUCT_CODES = {
    (DataType.FLOAT32, 4): "f",
    (DataType.FLOAT64, 8): "d",
    (DataType.INTEGER, 1): "B",
    (DataType.INTEGER, 2): "H",
    (DataType.INTEGER, 4): "I",
}

_NUMPY_CODES = {
    (DataType.FLOAT32, 4): "f4",
    (DataType.FLOAT64, 8): "f8",
    (DataType.INTEGER, 1): "u1",
    (DataType.INTEGER, 2): "u2",
    (DataType.INTEGER, 4): "u4",
}


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class PreviewData:
    """
    Evenly spaced event sample decoded at load time.

    Attributes:
        n: Number of sampled events
        indices: Source event index of each sample
        channels: One float32 array of length n per parameter
    """
    n: int
    indices: np.ndarray
    channels: List[np.ndarray]


# =============================================================================
# Scalar Decoding
# =============================================================================

def read_value(
    buf: bytes,
    offset: int,
    data_type: DataType,
    byte_width: int,
    little_endian: bool,
) -> float:
    """
    Decode one value at an absolute byte offset.

    Integers are unsigned 8, 16 or 32 bit; floats are IEEE 32 or 64 bit.

    Raises:
        ValueError: If the type/width combination is not decodable
        struct.error: If the offset runs past the buffer
    """
    code = _STRUCT_CODES.get((data_type, byte_width))
    if code is None:
        raise ValueError(f"No reader for {data_type.name} with {byte_width} bytes")
    order = "<" if little_endian else ">"
    return struct.unpack_from(order + code, buf, offset)[0]


def event_offset(meta: DatasetMeta, index: int) -> int:
    """Absolute byte offset of an event record."""
    return meta.data_start + index * meta.bytes_per_event


def read_event(buf: bytes, meta: DatasetMeta, index: int) -> List[float]:
    """
    Decode every channel of a single event.

    Raises:
        IndexError: If index is outside 0..n_events-1
    """
    if index < 0 or index >= meta.n_events:
        raise IndexError(f"Event {index} outside 0..{meta.n_events - 1}")
    offset = event_offset(meta, index)
    values = []
    for p in meta.params:
        values.append(read_value(buf, offset, meta.data_type, p.byte_width, meta.little_endian))
        offset += p.byte_width
    return values


# =============================================================================
# Vectorized Decoding
# =============================================================================

def record_dtype(meta: DatasetMeta) -> np.dtype:
    """Structured dtype describing one event record."""
    order = "<" if meta.little_endian else ">"
    fields = []
    for p in meta.params:
        fields.append((f"p{p.index}", order + _NUMPY_CODES[(meta.data_type, p.byte_width)]))
    return np.dtype(fields)


def _records(buf: bytes, meta: DatasetMeta, start: int = 0, count: int = -1) -> np.ndarray:
    if count < 0:
        count = meta.n_events - start
    dtype = record_dtype(meta)
    return np.frombuffer(
        buf, dtype=dtype, count=count, offset=event_offset(meta, start)
    )


def _split_channels(records: np.ndarray, meta: DatasetMeta) -> List[np.ndarray]:
    return [records[f"p{p.index}"].astype(CHANNEL_DTYPE) for p in meta.params]


def preview_indices(n_events: int, preview_n: int) -> np.ndarray:
    """
    Deterministic evenly spaced sample indices.

    idx[i] = min(n_events - 1, floor(i * n_events / preview_n)); all events
    when preview_n covers the whole dataset.
    """
    if preview_n >= n_events:
        return np.arange(n_events, dtype=np.int64)
    i = np.arange(preview_n, dtype=np.float64)
    idx = np.floor(i * (n_events / preview_n)).astype(np.int64)
    return np.minimum(idx, n_events - 1)


def read_preview(buf: bytes, meta: DatasetMeta,
                 cap: int = DEFAULT_PREVIEW_CAP) -> PreviewData:
    """
    Decode the preview sample.

    Args:
        buf: Complete file contents
        meta: Resolved metadata
        cap: Maximum number of sampled events

    Returns:
        PreviewData with min(cap, n_events) events per channel
    """
    preview_n = min(cap, meta.n_events)
    indices = preview_indices(meta.n_events, preview_n)
    records = _records(buf, meta)[indices]
    logger.debug("Decoded preview of %d/%d events", preview_n, meta.n_events)
    return PreviewData(n=preview_n, indices=indices, channels=_split_channels(records, meta))


def iter_event_chunks(
    buf: bytes,
    meta: DatasetMeta,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[Tuple[int, int, List[np.ndarray]]]:
    """
    Decode all events in consecutive chunks.

    Yields:
        (start, stop, channels) where channels hold events start..stop-1
    """
    chunk_size = max(1, int(chunk_size))
    records = _records(buf, meta)
    for start in range(0, meta.n_events, chunk_size):
        stop = min(start + chunk_size, meta.n_events)
        yield start, stop, _split_channels(records[start:stop], meta)


def read_full(buf: bytes, meta: DatasetMeta) -> List[np.ndarray]:
    """Decode every event into one float32 array per channel."""
    return _split_channels(_records(buf, meta), meta)


__all__ = [
    'DEFAULT_PREVIEW_CAP',
    'DEFAULT_CHUNK_SIZE',
    'CHANNEL_DTYPE',
    'PreviewData',
    'read_value',
    'event_offset',
    'read_event',
    'record_dtype',
    'preview_indices',
    'read_preview',
    'iter_event_chunks',
    'read_full',
]
