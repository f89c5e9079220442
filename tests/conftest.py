"""
Shared pytest fixtures.

Qt signal delivery across threads needs a running core application, so
session and service tests request the ``qapp`` fixture and use
``wait_until`` to pump events while background work completes.
"""

import time

import pytest
from PyQt6.QtCore import QCoreApplication

from cyto_workbench.core.settings import Settings

# Upper bound for any single wait on the compute thread
WAIT_TIMEOUT = 10.0


@pytest.fixture(scope="session")
def qapp():
    """Process-wide QCoreApplication."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def settings(tmp_path):
    """Fresh settings with the log file redirected into tmp_path."""
    s = Settings()
    s.logging.log_file = str(tmp_path / "cyto.log")
    return s


def wait_until(predicate, timeout: float = WAIT_TIMEOUT) -> bool:
    """Process Qt events until predicate() is true or the timeout expires."""
    app = QCoreApplication.instance()
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        app.processEvents()
        if predicate():
            return True
        time.sleep(0.005)
    app.processEvents()
    return predicate()
