"""
Utility functions for Cyto Workbench.

This module provides logging setup and the operation and performance
log helpers used across the application.
"""

from cyto_workbench.utils.logging import (
    setup_logging,
    log_system_info,
    log_operation,
    log_performance,
)

__all__ = [
    "setup_logging",
    "log_system_info",
    "log_operation",
    "log_performance",
]
