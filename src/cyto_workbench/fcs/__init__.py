"""
FCS container decoding for Cyto Workbench.

This package provides the fixed header parser, the delimited TEXT
segment tokenizer, dataset metadata resolution (event/parameter counts,
DATA range, numeric encoding, byte order, spillover), and the event
record reader for preview and full decodes.
"""

from cyto_workbench.fcs.errors import (
    FCSError,
    MalformedHeader,
    MalformedTextSegment,
    MissingRequiredField,
    InvalidDataRange,
    UnsupportedDataType,
    DataSegmentTooSmall,
    CompensationError,
    CoeffShapeMismatch,
    NoFullData,
    WorkerFault,
)

from cyto_workbench.fcs.header import (
    HEADER_SIZE,
    FCSHeader,
    parse_header,
    build_header,
)

from cyto_workbench.fcs.text_segment import (
    TextSegment,
    parse_text_segment,
    build_text_segment,
)

from cyto_workbench.fcs.metadata import (
    DataType,
    ParameterDescriptor,
    DatasetMeta,
    decode_metadata,
    resolve_metadata,
    parse_spillover,
)

from cyto_workbench.fcs.reader import (
    DEFAULT_PREVIEW_CAP,
    DEFAULT_CHUNK_SIZE,
    PreviewData,
    read_value,
    read_event,
    preview_indices,
    read_preview,
    iter_event_chunks,
    read_full,
)

__all__ = [
    # Errors
    "FCSError",
    "MalformedHeader",
    "MalformedTextSegment",
    "MissingRequiredField",
    "InvalidDataRange",
    "UnsupportedDataType",
    "DataSegmentTooSmall",
    "CompensationError",
    "CoeffShapeMismatch",
    "NoFullData",
    "WorkerFault",

    # Header
    "HEADER_SIZE",
    "FCSHeader",
    "parse_header",
    "build_header",

    # TEXT segment
    "TextSegment",
    "parse_text_segment",
    "build_text_segment",

    # Metadata
    "DataType",
    "ParameterDescriptor",
    "DatasetMeta",
    "decode_metadata",
    "resolve_metadata",
    "parse_spillover",

    # Reader
    "DEFAULT_PREVIEW_CAP",
    "DEFAULT_CHUNK_SIZE",
    "PreviewData",
    "read_value",
    "read_event",
    "preview_indices",
    "read_preview",
    "iter_event_chunks",
    "read_full",
]
