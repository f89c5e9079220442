"""
Base worker class for background compute jobs.

Provides the foundation for long-running jobs with:
- Cooperative cancellation (flag set from another thread, polled by the job)
- Signal-based completion, failure and cancellation reporting
- Running state tracking
"""

import logging
from typing import Callable, Optional

from PyQt6.QtCore import QObject, pyqtSignal

logger = logging.getLogger(__name__)


class BaseWorker(QObject):
    """
    Base class for all compute workers.

    Workers either run on a QThread of their own (moveToThread() and
    thread.started -> run) or are driven synchronously by an object that
    already lives on a background thread, as the compute service does.

    A worker may be given a cancel_check callable. It is polled along with
    the worker's own flag, so an owner can cancel a job without holding a
    reference to the worker.

    Example:
        worker = ApplyWorker(request)
        worker.operation_completed.connect(handle_result)
        worker.operation_failed.connect(handle_error)
        worker.run()
    """

    # Carries the result object (type varies by worker)
    operation_completed = pyqtSignal(object)

    # Carries (error kind, message)
    operation_failed = pyqtSignal(str, str)

    operation_cancelled = pyqtSignal()

    # Emitted after any of the above
    finished = pyqtSignal()

    def __init__(self, cancel_check: Optional[Callable[[], bool]] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._cancelled = False
        self._running = False
        self._cancel_check = cancel_check

    def cancel(self) -> None:
        """
        Request cancellation of the job.

        The job stops at its next cancellation check and reports
        operation_cancelled.
        """
        logger.info("%s: Cancellation requested", self.__class__.__name__)
        self._cancelled = True

    def is_cancelled(self) -> bool:
        """True if cancel() was called or the owner's cancel_check says so."""
        if self._cancelled:
            return True
        return self._cancel_check is not None and self._cancel_check()

    def is_running(self) -> bool:
        return self._running

    def run(self) -> None:
        """
        Execute the job.

        Subclasses must override this method. The implementation should
        check is_cancelled() periodically and finish through exactly one
        of _emit_completed, _emit_failed or _emit_cancelled.
        """
        raise NotImplementedError("Subclasses must implement run()")

    def _emit_completed(self, result: object) -> None:
        self._running = False
        self.operation_completed.emit(result)
        self.finished.emit()

    def _emit_failed(self, kind: str, message: str) -> None:
        self._running = False
        self.operation_failed.emit(kind, message)
        self.finished.emit()

    def _emit_cancelled(self) -> None:
        self._running = False
        self.operation_cancelled.emit()
        self.finished.emit()


__all__ = ['BaseWorker']
