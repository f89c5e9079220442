"""
Apply worker: full decode and compensation of every event.

Runs the four phases of an apply job in order:

    reading     load the file contents
    parsing     decode header, TEXT segment and metadata
    applying    decode and correct events chunk by chunk
    finalizing  freeze the corrected channels

Cancellation is checked after reading, after parsing, before every chunk
and once more before finalizing. A cancel requested at any point during
applying ends the job as cancelled.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import numpy as np
from PyQt6.QtCore import QObject, pyqtSignal

from cyto_workbench.core.compensation import apply_adjacency, build_adjacency
from cyto_workbench.fcs.errors import CoeffShapeMismatch, CompensationError, FCSError
from cyto_workbench.fcs.metadata import decode_metadata
from cyto_workbench.fcs.reader import CHANNEL_DTYPE, iter_event_chunks
from cyto_workbench.gui.workers.base_worker import BaseWorker
from cyto_workbench.gui.workers.messages import ApplyPhase, ApplyProgress, ApplyRequest
from cyto_workbench.utils.logging import log_performance

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class FullData:
    """
    Every event of a dataset, corrected.

    Attributes:
        n_events: Event count
        n_params: Channel count
        channels: One read-only float32 array per channel
        revision: Matrix revision the coefficients came from
    """
    n_events: int
    n_params: int
    channels: Tuple[np.ndarray, ...]
    revision: int


# =============================================================================
# Apply Worker
# =============================================================================

class ApplyWorker(BaseWorker):
    """
    Worker that decodes and corrects a whole dataset.

    Signals:
        progress(ApplyProgress): Phase changes and per-chunk progress
        operation_completed(FullData): Job finished
        operation_failed(str, str): Decode or coefficient error (kind, message)
        operation_cancelled(): Job stopped at a cancellation check

    Errors other than decode and coefficient errors propagate out of run()
    to the caller.
    """

    progress = pyqtSignal(object)

    def __init__(self, request: ApplyRequest,
                 cancel_check: Optional[Callable[[], bool]] = None,
                 parent: Optional[QObject] = None):
        super().__init__(cancel_check, parent)
        self._request = request

    @property
    def job_id(self) -> int:
        return self._request.job_id

    def _report(self, phase: ApplyPhase, done: int, total: int) -> None:
        self.progress.emit(ApplyProgress(self._request.job_id, phase, done, total))

    def run(self) -> None:
        self._running = True
        logger.info("Apply job %d: starting", self.job_id)
        try:
            result = self._apply()
        except (FCSError, CompensationError) as e:
            logger.warning("Apply job %d failed: %s", self.job_id, e)
            self._emit_failed(e.kind, str(e))
            return
        finally:
            self._running = False

        if result is None:
            logger.info("Apply job %d: cancelled", self.job_id)
            self._emit_cancelled()
        else:
            self._emit_completed(result)

    def _apply(self) -> Optional[FullData]:
        request = self._request
        start_time = time.time()

        self._report(ApplyPhase.READING, 0, 1)
        if isinstance(request.source, (bytes, bytearray, memoryview)):
            buf = bytes(request.source)
        else:
            buf = Path(request.source).read_bytes()
        if self.is_cancelled():
            return None

        self._report(ApplyPhase.PARSING, 0, 1)
        meta = decode_metadata(buf)
        n_events, n_params = meta.n_events, meta.n_params

        coeffs = np.asarray(request.coeffs, dtype=np.float64).reshape(-1)
        if coeffs.size != n_params * n_params:
            raise CoeffShapeMismatch(
                "Coefficient length mismatch",
                expected=n_params * n_params, actual=int(coeffs.size),
            )
        if self.is_cancelled():
            return None

        self._report(ApplyPhase.APPLYING, 0, n_events)
        adjacency = build_adjacency(coeffs, n_params)
        channels: List[np.ndarray] = [
            np.empty(n_events, dtype=CHANNEL_DTYPE) for _ in range(n_params)
        ]

        for start, stop, raw in iter_event_chunks(buf, meta, request.chunk_size):
            if self.is_cancelled():
                return None
            corrected = apply_adjacency(adjacency, raw, dtype=CHANNEL_DTYPE)
            for p in range(n_params):
                channels[p][start:stop] = corrected[p]
            self._report(ApplyPhase.APPLYING, stop, n_events)
        if self.is_cancelled():
            return None

        self._report(ApplyPhase.FINALIZING, n_events, n_events)
        for ch in channels:
            ch.setflags(write=False)

        duration = time.time() - start_time
        log_performance(
            "apply", duration,
            events=n_events,
            events_per_second=int(n_events / duration) if duration > 0 else n_events,
        )
        return FullData(
            n_events=n_events,
            n_params=n_params,
            channels=tuple(channels),
            revision=request.revision,
        )


__all__ = ['FullData', 'ApplyWorker']
