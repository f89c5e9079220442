"""
Messages exchanged with the background compute service.

Every request and response is a frozen dataclass. Arrays carried in
messages are copies marked read-only, and file contents are immutable
bytes, so nothing sent across threads can be mutated by either side.

Requests (interactive -> background):
    ApplyRequest, DensityRequest, CancelRequest, ClearRequest, ShutdownRequest

Responses (background -> interactive):
    ApplyProgress, ApplyDone, ApplyCancelled, ApplyFailed,
    DensityReady, DensityFailed, Cleared, ServiceFault
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import Optional, Union

import numpy as np

from cyto_workbench.core.density import DensityQuery, DensityResult
from cyto_workbench.fcs.reader import DEFAULT_CHUNK_SIZE


# =============================================================================
# Enumerations
# =============================================================================

class JobStatus(IntEnum):
    """Lifecycle of an apply job."""
    IDLE = 0
    RUNNING = 1
    DONE = 2
    CANCELLED = 3
    ERROR = 4

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.CANCELLED, JobStatus.ERROR)


class ApplyPhase(Enum):
    """Apply job phases, in the order they run."""
    STARTING = "starting"
    READING = "reading"
    PARSING = "parsing"
    APPLYING = "applying"
    FINALIZING = "finalizing"


# =============================================================================
# Requests
# =============================================================================

@dataclass(frozen=True)
class ApplyRequest:
    """Decode and correct every event of a file with a coefficient snapshot."""
    job_id: int
    source: Union[bytes, Path]
    coeffs: np.ndarray
    revision: int
    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class DensityRequest:
    """Bin the held full result for one visualization slot."""
    slot: str
    request_id: int
    query: DensityQuery


@dataclass(frozen=True)
class CancelRequest:
    job_id: int


@dataclass(frozen=True)
class ClearRequest:
    pass


@dataclass(frozen=True)
class ShutdownRequest:
    pass


# =============================================================================
# Responses
# =============================================================================

@dataclass(frozen=True)
class ApplyProgress:
    job_id: int
    phase: ApplyPhase
    done: int
    total: int


@dataclass(frozen=True)
class ApplyDone:
    job_id: int
    n_events: int
    n_params: int
    revision: int


@dataclass(frozen=True)
class ApplyCancelled:
    job_id: int


@dataclass(frozen=True)
class ApplyFailed:
    job_id: int
    kind: str
    message: str


@dataclass(frozen=True)
class DensityReady:
    slot: str
    request_id: int
    result: DensityResult


@dataclass(frozen=True)
class DensityFailed:
    slot: str
    request_id: int
    key: str
    kind: str
    message: str


@dataclass(frozen=True)
class Cleared:
    pass


@dataclass(frozen=True)
class ServiceFault:
    """The service hit an unexpected error while handling a request."""
    message: str
    kind: str = "WorkerFault"
    job_id: Optional[int] = None
    request: Optional[str] = None


__all__ = [
    'JobStatus',
    'ApplyPhase',
    'ApplyRequest',
    'DensityRequest',
    'CancelRequest',
    'ClearRequest',
    'ShutdownRequest',
    'ApplyProgress',
    'ApplyDone',
    'ApplyCancelled',
    'ApplyFailed',
    'DensityReady',
    'DensityFailed',
    'Cleared',
    'ServiceFault',
]
