"""
Background workers for Cyto Workbench.

Provides the compute service that runs on its own QThread, the apply
worker it drives, and the request/response messages they exchange.
"""

# Message protocol
from cyto_workbench.gui.workers.messages import (
    JobStatus,
    ApplyPhase,
    ApplyRequest,
    DensityRequest,
    CancelRequest,
    ClearRequest,
    ShutdownRequest,
    ApplyProgress,
    ApplyDone,
    ApplyCancelled,
    ApplyFailed,
    DensityReady,
    DensityFailed,
    Cleared,
    ServiceFault,
)

# Base worker class
from cyto_workbench.gui.workers.base_worker import BaseWorker

# Apply worker
from cyto_workbench.gui.workers.apply_worker import (
    ApplyWorker,
    FullData,
)

# Compute service
from cyto_workbench.gui.workers.compute_service import ComputeService

__all__ = [
    # Messages
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

    # Workers
    'BaseWorker',
    'ApplyWorker',
    'FullData',
    'ComputeService',
]
