"""
Logging configuration for Cyto Workbench.

Provides file logging with system information capture for debugging,
plus helpers that give operation and timing messages a uniform shape.
"""

import logging
import platform
import sys
from pathlib import Path
from typing import Union

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(log_file: Union[str, Path] = "cyto_workbench.log",
                  level: int = logging.DEBUG,
                  console_level: int = logging.INFO) -> None:
    """
    Configure logging for the application.

    Sets up file-based logging at the given level and a console handler,
    then records system information for troubleshooting.

    Args:
        log_file: Path to log file (default: "cyto_workbench.log")
        level: Logging level for the file (default: logging.DEBUG)
        console_level: Logging level for the console (default: logging.INFO)

    Example:
        >>> setup_logging("/tmp/cyto.log", logging.INFO)
        >>> logging.info("Application started")
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        filename=str(log_path),
        level=level,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console output goes to stderr so command output on stdout stays clean
    console_handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    logging.getLogger().addHandler(console_handler)

    log_system_info()


def log_system_info() -> None:
    """Log platform, Python and library versions."""
    import numpy
    from PyQt6.QtCore import QT_VERSION_STR

    logging.info("=" * 60)
    logging.info("Cyto Workbench - System Information")
    logging.info("=" * 60)
    logging.info("Platform: %s %s", platform.system(), platform.release())
    logging.info("Machine: %s", platform.machine())
    logging.info("Python version: %s", sys.version)
    logging.info("Python executable: %s", sys.executable)
    logging.info("numpy: %s, Qt: %s", numpy.__version__, QT_VERSION_STR)
    logging.info("=" * 60)


def log_operation(operation: str, details: str, level: int = logging.INFO) -> None:
    """
    Log an operation with details.

    Args:
        operation: Name of the operation (e.g., "load_dataset", "apply")
        details: Additional details about the operation
        level: Logging level (default: logging.INFO)

    Example:
        >>> log_operation("apply", "job 3 started, 1200000 events")
    """
    logging.log(level, "%s: %s", operation, details)


def log_performance(operation: str, duration: float, **metrics) -> None:
    """
    Log performance metrics for an operation.

    Args:
        operation: Name of the operation
        duration: Duration in seconds
        **metrics: Additional metrics (e.g., events_per_second)

    Example:
        >>> log_performance("apply", 2.4, events=1200000, events_per_second=500000)
    """
    metrics_str = ", ".join(f"{k}={v}" for k, v in metrics.items())
    logging.info("Performance - %s: %.2fs, %s", operation, duration, metrics_str)
