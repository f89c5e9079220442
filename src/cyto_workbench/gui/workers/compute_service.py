"""
Background compute service.

A single long-lived QObject that owns the full corrected dataset. It is
moved onto its own QThread and handles one request at a time, in the
order they were posted. Requests arrive through a queued signal and every
response leaves through the ``response`` signal, so all state inside the
service is only ever touched from the service thread.

Cancellation cannot wait in the request queue behind the job it targets,
so post() records it immediately in a job-id watermark shared with the
running job: a job is cancelled once its id is at or below the watermark.
Posting job n cancels every earlier job, and a cancel for job n can never
reach job n + 1.
"""

import logging
import threading
from typing import Optional

from PyQt6.QtCore import QCoreApplication, QObject, pyqtSignal

from cyto_workbench.core.density import compute_density
from cyto_workbench.fcs.errors import NoFullData
from cyto_workbench.gui.workers.apply_worker import ApplyWorker, FullData
from cyto_workbench.gui.workers.messages import (
    ApplyCancelled,
    ApplyDone,
    ApplyFailed,
    ApplyRequest,
    CancelRequest,
    Cleared,
    ClearRequest,
    DensityFailed,
    DensityReady,
    DensityRequest,
    ServiceFault,
    ShutdownRequest,
)

logger = logging.getLogger(__name__)


class ComputeService(QObject):
    """
    Actor that runs apply and density jobs off the interactive thread.

    Signals:
        response(object): One response message per event, see messages.py
        stopped(): Emitted after a ShutdownRequest has been handled

    Example:
        thread = QThread()
        service = ComputeService()
        service.moveToThread(thread)
        service.response.connect(session.handle_response)
        thread.start()
        service.post(ApplyRequest(1, data, snapshot.coeffs, snapshot.revision))
    """

    response = pyqtSignal(object)
    stopped = pyqtSignal()

    # Queued into the service thread by post()
    _requested = pyqtSignal(object)

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._full: Optional[FullData] = None
        self._lock = threading.Lock()
        self._cancel_upto = 0
        self._last_job_id = 0
        self._requested.connect(self._dispatch)

    # =========================================================================
    # Interactive Side
    # =========================================================================

    def post(self, request: object) -> None:
        """
        Queue a request for the service thread.

        Safe to call from any thread. Apply, cancel, clear and shutdown
        requests update the cancellation watermark before queueing.
        """
        match request:
            case ApplyRequest(job_id=job_id):
                with self._lock:
                    self._last_job_id = max(self._last_job_id, job_id)
                    self._cancel_upto = max(self._cancel_upto, job_id - 1)
            case CancelRequest(job_id=job_id):
                with self._lock:
                    self._cancel_upto = max(self._cancel_upto, job_id)
            case ClearRequest() | ShutdownRequest():
                with self._lock:
                    self._cancel_upto = max(self._cancel_upto, self._last_job_id)
        self._requested.emit(request)

    def is_job_cancelled(self, job_id: int) -> bool:
        with self._lock:
            return job_id <= self._cancel_upto

    # =========================================================================
    # Service Thread
    # =========================================================================

    @property
    def has_full(self) -> bool:
        return self._full is not None

    def _dispatch(self, request: object) -> None:
        try:
            match request:
                case ApplyRequest():
                    self._run_apply(request)
                case DensityRequest():
                    self._run_density(request)
                case CancelRequest(job_id=job_id):
                    logger.debug("Cancel for job %d recorded", job_id)
                case ClearRequest():
                    self._full = None
                    logger.info("Full dataset cleared")
                    self.response.emit(Cleared())
                case ShutdownRequest():
                    self._full = None
                    logger.info("Compute service stopping")
                    self.stopped.emit()
                    self._quit_thread()
                case _:
                    logger.warning("Ignoring unknown request %r", request)
        except Exception as e:
            logger.exception("Compute service failed handling %s", type(request).__name__)
            self.response.emit(ServiceFault(
                message=str(e) or type(e).__name__,
                job_id=getattr(request, "job_id", None),
                request=type(request).__name__,
            ))

    def _quit_thread(self) -> None:
        """Stop the service thread's event loop, never the application's."""
        thread = self.thread()
        app = QCoreApplication.instance()
        if thread is None or (app is not None and thread is app.thread()):
            return
        thread.quit()

    def _run_apply(self, request: ApplyRequest) -> None:
        job_id = request.job_id
        worker = ApplyWorker(request, cancel_check=lambda: self.is_job_cancelled(job_id))
        worker.progress.connect(self.response.emit)
        worker.operation_completed.connect(lambda full: self._on_apply_completed(job_id, full))
        worker.operation_failed.connect(
            lambda kind, message: self.response.emit(ApplyFailed(job_id, kind, message))
        )
        worker.operation_cancelled.connect(lambda: self.response.emit(ApplyCancelled(job_id)))
        worker.run()

    def _on_apply_completed(self, job_id: int, full: FullData) -> None:
        if self.is_job_cancelled(job_id):
            logger.info("Discarding result of superseded job %d", job_id)
            self.response.emit(ApplyCancelled(job_id))
            return
        self._full = full
        logger.info("Full dataset ready: %d events, revision %d", full.n_events, full.revision)
        self.response.emit(ApplyDone(
            job_id=job_id,
            n_events=full.n_events,
            n_params=full.n_params,
            revision=full.revision,
        ))

    def _run_density(self, request: DensityRequest) -> None:
        channels = self._full.channels if self._full is not None else None
        try:
            result = compute_density(channels, request.query)
        except NoFullData as e:
            self.response.emit(DensityFailed(
                slot=request.slot,
                request_id=request.request_id,
                key=request.query.key,
                kind=e.kind,
                message=str(e),
            ))
            return
        self.response.emit(DensityReady(request.slot, request.request_id, result))


__all__ = ['ComputeService']
