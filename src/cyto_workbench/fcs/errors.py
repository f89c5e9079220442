"""
Exception taxonomy for FCS decoding, compensation and background jobs.

Every decode failure aborts the whole decode; no partial dataset is ever
returned. Each exception carries the structured values a caller needs to
report the failure precisely (offsets, byte counts, offending keys), and
folds them into the formatted message.
"""

from typing import Optional


# =============================================================================
# FCS Container Errors
# =============================================================================

class FCSError(Exception):
    """Base exception for FCS container errors."""

    def __init__(self, message: str, filepath: Optional[str] = None):
        self.message = message
        self.filepath = filepath
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.filepath:
            return f"{self.message} [File: {self.filepath}]"
        return self.message

    @property
    def kind(self) -> str:
        """Short error kind name used in job error reports."""
        return type(self).__name__


class MalformedHeader(FCSError):
    """Raised when the fixed 58-byte header is short, unsigned or inconsistent."""
    pass


class MalformedTextSegment(FCSError):
    """Raised when the TEXT segment range is out of bounds or too short."""
    pass


class MissingRequiredField(FCSError):
    """Raised when a required TEXT keyword is absent or not a positive integer."""

    def __init__(self, message: str, filepath: Optional[str] = None,
                 key: Optional[str] = None):
        self.key = key
        super().__init__(message, filepath)

    def _format_message(self) -> str:
        base = super()._format_message()
        if self.key:
            return f"{base} [Key: {self.key}]"
        return base


class InvalidDataRange(FCSError):
    """Raised when the resolved DATA segment range is empty or outside the file."""

    def __init__(self, message: str, filepath: Optional[str] = None,
                 start: Optional[int] = None, end: Optional[int] = None):
        self.start = start
        self.end = end
        super().__init__(message, filepath)

    def _format_message(self) -> str:
        base = super()._format_message()
        if self.start is not None and self.end is not None:
            return f"{base} [Start: {self.start}, End: {self.end}]"
        return base


class UnsupportedDataType(FCSError):
    """Raised for a $DATATYPE or $PnB bit width the reader cannot decode."""

    def __init__(self, message: str, filepath: Optional[str] = None,
                 data_type: Optional[str] = None,
                 bit_width: Optional[int] = None):
        self.data_type = data_type
        self.bit_width = bit_width
        super().__init__(message, filepath)

    def _format_message(self) -> str:
        base = super()._format_message()
        if self.bit_width is not None:
            return f"{base} [Type: {self.data_type}, Bits: {self.bit_width}]"
        if self.data_type is not None:
            return f"{base} [Type: {self.data_type}]"
        return base


class DataSegmentTooSmall(FCSError):
    """Raised when the DATA segment cannot hold $TOT events."""

    def __init__(self, message: str, filepath: Optional[str] = None,
                 required: Optional[int] = None,
                 actual: Optional[int] = None):
        self.required = required
        self.actual = actual
        super().__init__(message, filepath)

    def _format_message(self) -> str:
        base = super()._format_message()
        if self.required is not None and self.actual is not None:
            return f"{base} [Required: {self.required}, Actual: {self.actual}]"
        return base


# =============================================================================
# Compensation Errors
# =============================================================================

class CompensationError(Exception):
    """Base exception for compensation matrix errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class CoeffShapeMismatch(CompensationError):
    """Raised when a coefficient payload does not fit the current matrix."""

    def __init__(self, message: str, expected: Optional[int] = None,
                 actual: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        if expected is not None and actual is not None:
            message = f"{message} [Expected: {expected}, Actual: {actual}]"
        super().__init__(message)


# =============================================================================
# Job Errors
# =============================================================================

class NoFullData(Exception):
    """Raised when a density query arrives before any full dataset is available."""

    kind = "NoFullData"


class WorkerFault(Exception):
    """Raised (or reported) when the background context fails unexpectedly."""

    kind = "WorkerFault"


__all__ = [
    'FCSError',
    'MalformedHeader',
    'MalformedTextSegment',
    'MissingRequiredField',
    'InvalidDataRange',
    'UnsupportedDataType',
    'DataSegmentTooSmall',
    'CompensationError',
    'CoeffShapeMismatch',
    'NoFullData',
    'WorkerFault',
]
