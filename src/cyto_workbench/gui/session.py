"""
Interactive-side session state.

WorkbenchSession owns everything the user edits: the open dataset, the
compensation matrix and its revision, the gate tree, the apply job state
and the per-slot density cache. Heavy work is handed to a ComputeService
running on its own QThread; its responses come back through a queued
signal and are filtered here so that superseded jobs and requests never
touch session state.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from PyQt6.QtCore import QObject, QThread, pyqtSignal

from cyto_workbench.core.compensation import CompensationMatrix, load_compensation
from cyto_workbench.core.dataset import Dataset, load_dataset
from cyto_workbench.core.density import DensityQuery, DensityResult, compute_preview_density
from cyto_workbench.core.gating import GateRect, GateTree
from cyto_workbench.core.settings import Settings, get_settings
from cyto_workbench.gui.workers.compute_service import ComputeService
from cyto_workbench.gui.workers.messages import (
    ApplyCancelled,
    ApplyDone,
    ApplyFailed,
    ApplyPhase,
    ApplyProgress,
    ApplyRequest,
    CancelRequest,
    Cleared,
    ClearRequest,
    DensityFailed,
    DensityReady,
    DensityRequest,
    JobStatus,
    ServiceFault,
    ShutdownRequest,
)
from cyto_workbench.utils.logging import log_operation

logger = logging.getLogger(__name__)


# Time to wait for the service thread to stop on shutdown
SHUTDOWN_TIMEOUT_MS = 5000


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ApplyJobState:
    """
    Interactive view of the current apply job.

    Attributes:
        status: Lifecycle status
        phase: Current phase, None when idle
        done: Events processed so far
        total: Events to process (<= 0 means indeterminate)
        applied_revision: Revision the job was started with
        error: Failure message for ERROR
        job_id: Id of the job, 0 before the first job
    """
    status: JobStatus = JobStatus.IDLE
    phase: Optional[ApplyPhase] = None
    done: int = 0
    total: int = 0
    applied_revision: Optional[int] = None
    error: Optional[str] = None
    job_id: int = 0


@dataclass(frozen=True)
class PendingDensity:
    request_id: int
    key: str


# =============================================================================
# Session
# =============================================================================

class WorkbenchSession(QObject):
    """
    State and job orchestration for one open dataset.

    Signals:
        dataset_loaded(Dataset): A new dataset replaced the previous one
        matrix_changed(int): Compensation edited; carries the new revision
        apply_state_changed(ApplyJobState): Apply job status or progress moved
        full_changed(): The service's full result was replaced or cleared
        density_ready(str, DensityResult): Full-data density for a slot
        density_failed(str, str): Density request for a slot failed (slot, message)
        error_occurred(str): Service fault

    Example:
        session = WorkbenchSession()
        session.load_dataset("sample.fcs")
        session.set_coeff(0, 1, 0.12)
        session.start_apply()
        ...
        session.shutdown()
    """

    dataset_loaded = pyqtSignal(object)
    matrix_changed = pyqtSignal(int)
    apply_state_changed = pyqtSignal(object)
    full_changed = pyqtSignal()
    density_ready = pyqtSignal(str, object)
    density_failed = pyqtSignal(str, str)
    error_occurred = pyqtSignal(str)

    def __init__(self, settings: Optional[Settings] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self.settings = settings if settings is not None else get_settings()

        self.dataset: Optional[Dataset] = None
        self.matrix: Optional[CompensationMatrix] = None
        self.gates = GateTree()
        self.apply_state = ApplyJobState()

        # Revision of the full result the service currently holds
        self.full_revision: Optional[int] = None

        self._next_job_id = 1
        self._next_request_id = 1
        self._density_cache: Dict[str, DensityResult] = {}
        self._pending: Dict[str, PendingDensity] = {}

        self._thread = QThread()
        self._thread.setObjectName("compute-service")
        self._service = ComputeService()
        self._service.moveToThread(self._thread)
        self._service.response.connect(self.handle_response)
        self._thread.start()
        self._running = True

    # =========================================================================
    # Dataset
    # =========================================================================

    def load_dataset(self, source: Union[str, Path, bytes]) -> Dataset:
        """
        Open a dataset, replacing the current one.

        Decode errors propagate and leave the session unchanged.
        """
        dataset = load_dataset(source, self.settings.processing.preview_cap)

        self.clear_full()
        self.dataset = dataset
        self.matrix = CompensationMatrix(dataset.n_params, initial=dataset.meta.spillover)
        self.gates.clear()
        self.apply_state = ApplyJobState(job_id=self.apply_state.job_id)

        log_operation("load_dataset", f"{dataset.name}: {dataset.n_events} events")
        self.dataset_loaded.emit(dataset)
        self.apply_state_changed.emit(self.apply_state)
        self.matrix_changed.emit(self.matrix.revision)
        return dataset

    # =========================================================================
    # Compensation Editing
    # =========================================================================

    def _require_matrix(self) -> CompensationMatrix:
        if self.matrix is None:
            raise RuntimeError("No dataset loaded")
        return self.matrix

    def set_coeff(self, source: int, to: int, value: float) -> None:
        matrix = self._require_matrix()
        matrix.set_coeff(source, to, value)
        self.matrix_changed.emit(matrix.revision)

    def reset_pair(self, source: int, to: int) -> None:
        matrix = self._require_matrix()
        matrix.reset_pair(source, to)
        self.matrix_changed.emit(matrix.revision)

    def reset_all(self) -> None:
        matrix = self._require_matrix()
        matrix.reset_all()
        self.matrix_changed.emit(matrix.revision)

    def load_compensation(self, path: Union[str, Path]) -> None:
        """Load compensation JSON; the matrix is unchanged if loading fails."""
        matrix = self._require_matrix()
        load_compensation(matrix, path)
        self.matrix_changed.emit(matrix.revision)

    # =========================================================================
    # Apply Jobs
    # =========================================================================

    @property
    def has_full(self) -> bool:
        return self.full_revision is not None

    def is_full_stale(self) -> bool:
        """True if a full result exists but the matrix was edited since its job started."""
        if self.full_revision is None or self.matrix is None:
            return False
        return self.full_revision != self.matrix.revision

    def start_apply(self) -> int:
        """
        Start a full apply with the current coefficients.

        Supersedes any running job. Returns the new job id.
        """
        if self.dataset is None:
            raise RuntimeError("No dataset loaded")
        matrix = self._require_matrix()

        job_id = self._next_job_id
        self._next_job_id += 1
        snapshot = matrix.snapshot()

        self.apply_state = ApplyJobState(
            status=JobStatus.RUNNING,
            phase=ApplyPhase.STARTING,
            done=0,
            total=self.dataset.n_events,
            applied_revision=snapshot.revision,
            job_id=job_id,
        )
        self._service.post(ApplyRequest(
            job_id=job_id,
            source=self.dataset.source,
            coeffs=snapshot.coeffs,
            revision=snapshot.revision,
            chunk_size=self.settings.processing.chunk_size,
        ))
        log_operation("apply", f"job {job_id} started at revision {snapshot.revision}")
        self.apply_state_changed.emit(self.apply_state)
        return job_id

    def cancel_apply(self) -> None:
        """Request cancellation of the running job, if any."""
        if self.apply_state.status != JobStatus.RUNNING:
            return
        self._service.post(CancelRequest(self.apply_state.job_id))
        log_operation("apply", f"job {self.apply_state.job_id} cancel requested")

    def clear_full(self) -> None:
        """Drop the full result and cancel any running job."""
        self._service.post(ClearRequest())
        self.full_revision = None
        self._density_cache.clear()
        self._pending.clear()
        if self.apply_state.status != JobStatus.IDLE:
            self.apply_state = ApplyJobState(job_id=self.apply_state.job_id)
            self.apply_state_changed.emit(self.apply_state)

    # =========================================================================
    # Density
    # =========================================================================

    def preview_density(self, query: DensityQuery) -> DensityResult:
        """Density over the preview sample with the live matrix."""
        if self.dataset is None:
            raise RuntimeError("No dataset loaded")
        return compute_preview_density(self.dataset.preview.channels, self._require_matrix(), query)

    def request_density(self, slot: str, query: DensityQuery) -> Optional[DensityResult]:
        """
        Get a full-data density for a slot.

        Returns the cached result when its key matches. Otherwise posts a
        request (unless the same key is already in flight for the slot)
        and returns None; the result arrives through density_ready.
        """
        key = query.key
        cached = self._density_cache.get(slot)
        if cached is not None and cached.key == key:
            return cached

        pending = self._pending.get(slot)
        if pending is not None and pending.key == key:
            return None

        request_id = self._next_request_id
        self._next_request_id += 1
        self._pending[slot] = PendingDensity(request_id, key)
        self._service.post(DensityRequest(slot=slot, request_id=request_id, query=query))
        logger.debug("Density request %d posted for %s", request_id, slot)
        return None

    def cached_density(self, slot: str) -> Optional[DensityResult]:
        return self._density_cache.get(slot)

    def gate_chain(self, gate_id: Optional[str] = None) -> Tuple[GateRect, ...]:
        """Gate chain of a population, the selected gate by default."""
        return self.gates.chain(gate_id if gate_id is not None else self.gates.selected_id)

    # =========================================================================
    # Responses
    # =========================================================================

    def _is_current_job(self, job_id: Optional[int]) -> bool:
        return (
            job_id is not None
            and job_id == self.apply_state.job_id
            and self.apply_state.status == JobStatus.RUNNING
        )

    def _accept_density(self, slot: str, request_id: int) -> bool:
        pending = self._pending.get(slot)
        if pending is None or pending.request_id != request_id:
            logger.debug("Dropping stale density response %d for %s", request_id, slot)
            return False
        del self._pending[slot]
        return True

    def handle_response(self, msg: object) -> None:
        """Apply one service response to session state."""
        match msg:
            case ApplyProgress(job_id=job_id) if self._is_current_job(job_id):
                state = self.apply_state
                state.phase = msg.phase
                state.total = msg.total
                state.done = max(state.done, msg.done) if msg.phase == ApplyPhase.APPLYING else msg.done
                self.apply_state_changed.emit(state)

            case ApplyDone(job_id=job_id):
                # The service holds this result whichever job produced it
                self.full_revision = msg.revision
                self._density_cache.clear()
                if self._is_current_job(job_id):
                    state = self.apply_state
                    state.status = JobStatus.DONE
                    state.phase = None
                    state.done = state.total = msg.n_events
                    state.applied_revision = msg.revision
                    log_operation("apply", f"job {job_id} done, {msg.n_events} events")
                    self.apply_state_changed.emit(state)
                else:
                    logger.debug("Job %d finished after it was superseded", job_id)
                self.full_changed.emit()

            case ApplyCancelled(job_id=job_id) if self._is_current_job(job_id):
                self.apply_state.status = JobStatus.CANCELLED
                self.apply_state.phase = None
                log_operation("apply", f"job {job_id} cancelled")
                self.apply_state_changed.emit(self.apply_state)

            case ApplyFailed(job_id=job_id) if self._is_current_job(job_id):
                self.apply_state.status = JobStatus.ERROR
                self.apply_state.phase = None
                self.apply_state.error = msg.message
                log_operation("apply", f"job {job_id} failed: {msg.message}", logging.WARNING)
                self.apply_state_changed.emit(self.apply_state)

            case DensityReady(slot=slot, request_id=request_id):
                if self._accept_density(slot, request_id):
                    self._density_cache[slot] = msg.result
                    self.density_ready.emit(slot, msg.result)

            case DensityFailed(slot=slot, request_id=request_id):
                if self._accept_density(slot, request_id):
                    self.density_failed.emit(slot, msg.message)

            case Cleared():
                logger.debug("Service confirmed full result cleared")
                self.full_revision = None
                self._density_cache.clear()
                self.full_changed.emit()

            case ServiceFault():
                logger.error("Compute service fault in %s: %s", msg.request, msg.message)
                if self._is_current_job(msg.job_id):
                    self.apply_state.status = JobStatus.ERROR
                    self.apply_state.phase = None
                    self.apply_state.error = msg.message
                    self.apply_state_changed.emit(self.apply_state)
                self.error_occurred.emit(msg.message)

            case _:
                logger.debug("Ignoring response %r", msg)

    # =========================================================================
    # Shutdown
    # =========================================================================

    def shutdown(self) -> None:
        """Stop the compute service and its thread."""
        if not self._running:
            return
        self._running = False
        self._service.post(ShutdownRequest())
        if not self._thread.wait(SHUTDOWN_TIMEOUT_MS):
            logger.warning("Compute service did not stop in time")
            self._thread.quit()
            self._thread.wait()
        self._service.response.disconnect(self.handle_response)


__all__ = [
    'SHUTDOWN_TIMEOUT_MS',
    'ApplyJobState',
    'PendingDensity',
    'WorkbenchSession',
]
