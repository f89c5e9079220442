"""
Settings management module for Cyto Workbench.

This module provides settings management with JSON-based persistence
and a process-wide instance.

Settings Categories:
    - Processing: Preview sample size, apply chunk size
    - Density: Default grid size
    - Transform: Default axis scale and transform parameters
    - Logging: Log file and level
"""

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from cyto_workbench.core.transforms import (
    DEFAULT_ARCSINH_COFACTOR,
    DEFAULT_SYMLOG_LINTHRESH,
    ScaleKind,
    TransformParams,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Settings File Paths
# =============================================================================

def get_settings_dir() -> Path:
    """
    Get the platform-specific settings directory.

    Platform paths:
        - Linux: $XDG_CONFIG_HOME/cyto-workbench/ (~/.config by default)
        - Windows: %APPDATA%/CytoWorkbench/
        - macOS: ~/Library/Application Support/CytoWorkbench/
    """
    if sys.platform == 'win32':
        base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
        return base / 'CytoWorkbench'
    elif sys.platform == 'darwin':
        return Path.home() / 'Library' / 'Application Support' / 'CytoWorkbench'
    else:
        xdg_config = os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config')
        return Path(xdg_config) / 'cyto-workbench'


def get_settings_file() -> Path:
    """Get the settings file path."""
    return get_settings_dir() / 'settings.json'


# =============================================================================
# Settings Dataclasses
# =============================================================================

@dataclass
class ProcessingSettings:
    """Decode and apply settings."""
    preview_cap: int = 10_000        # Events sampled at load time
    chunk_size: int = 8192           # Events per apply chunk (cancel granularity)


@dataclass
class DensitySettings:
    """Density grid settings."""
    default_grid: int = 128          # Clamped to 8..512 by DensityQuery


@dataclass
class TransformSettings:
    """Axis transform settings."""
    default_scale: str = ScaleKind.LINEAR.value
    arcsinh_cofactor: float = DEFAULT_ARCSINH_COFACTOR
    symlog_linthresh: float = DEFAULT_SYMLOG_LINTHRESH

    def get_scale(self) -> ScaleKind:
        """Get default scale as enum."""
        return ScaleKind.parse(self.default_scale)

    def get_params(self) -> TransformParams:
        return TransformParams(
            arcsinh_cofactor=self.arcsinh_cofactor,
            symlog_linthresh=self.symlog_linthresh,
        )


@dataclass
class LoggingSettings:
    """Logging settings."""
    log_file: str = ""               # Empty = settings dir / cyto-workbench.log
    level: str = "INFO"

    def get_level(self) -> int:
        return getattr(logging, str(self.level).upper(), logging.INFO)

    def get_log_file(self) -> Path:
        if self.log_file:
            return Path(self.log_file)
        return get_settings_dir() / 'cyto-workbench.log'


# =============================================================================
# Settings Manager
# =============================================================================

class Settings:
    """
    Settings manager for Cyto Workbench.

    Usage:
        settings = get_settings()
        settings.processing.chunk_size = 16384
        settings.save()
    """

    _instance: Optional["Settings"] = None

    SETTINGS_VERSION = 1

    CATEGORIES = ('processing', 'density', 'transform', 'logging')

    def __init__(self):
        self.processing = ProcessingSettings()
        self.density = DensitySettings()
        self.transform = TransformSettings()
        self.logging = LoggingSettings()

    @classmethod
    def instance(cls) -> "Settings":
        """Get the process-wide settings instance, loading it on first use."""
        if cls._instance is None:
            cls._instance = cls()
            cls._instance.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the process-wide instance (for testing)."""
        cls._instance = None

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self, path: Optional[Union[str, Path]] = None) -> bool:
        """
        Load settings from file.

        A missing or unreadable file leaves the defaults in place. Unknown
        keys are ignored.

        Returns:
            True if settings were loaded successfully
        """
        settings_file = Path(path) if path is not None else get_settings_file()

        if not settings_file.exists():
            logger.info("Settings file not found: %s", settings_file)
            return False

        try:
            with open(settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in settings file %s: %s", settings_file, e)
            return False
        except OSError as e:
            logger.error("Error reading settings %s: %s", settings_file, e)
            return False

        if not isinstance(data, dict):
            logger.error("Settings file %s does not hold an object", settings_file)
            return False

        for category in self.CATEGORIES:
            section = data.get(category)
            if isinstance(section, dict):
                self._load_dataclass(getattr(self, category), section)

        logger.info("Settings loaded from %s", settings_file)
        return True

    def save(self, path: Optional[Union[str, Path]] = None) -> bool:
        """
        Save settings to file (temp file + atomic replace).

        Returns:
            True if settings were saved successfully
        """
        settings_file = Path(path) if path is not None else get_settings_file()

        try:
            settings_file.parent.mkdir(parents=True, exist_ok=True)

            data: Dict[str, Any] = {
                'version': self.SETTINGS_VERSION,
                'saved_at': datetime.now().isoformat(),
            }
            for category in self.CATEGORIES:
                data[category] = asdict(getattr(self, category))

            temp_file = settings_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            temp_file.replace(settings_file)

            logger.info("Settings saved to %s", settings_file)
            return True

        except OSError as e:
            logger.error("Error saving settings to %s: %s", settings_file, e)
            return False

    def _load_dataclass(self, target: Any, data: Dict[str, Any]) -> None:
        """Load data into a dataclass, ignoring unknown fields."""
        for key, value in data.items():
            if hasattr(target, key):
                setattr(target, key, value)
            else:
                logger.debug("Ignoring unknown setting %s", key)


def get_settings() -> Settings:
    """Get the global settings instance."""
    return Settings.instance()


__all__ = [
    'ProcessingSettings',
    'DensitySettings',
    'TransformSettings',
    'LoggingSettings',
    'Settings',
    'get_settings',
    'get_settings_dir',
    'get_settings_file',
]
