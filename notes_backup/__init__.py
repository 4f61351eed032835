"""Scheduled backups of a note profile with retention of dated backup sets."""
from __future__ import annotations

from .config import BackupConfig, ConfigError, load_config
from .errors import BackupError
from .pipeline import BackupPipeline, RunOutcome, RunResult

__version__ = "1.0.0"

__all__ = [
    "BackupConfig",
    "BackupError",
    "BackupPipeline",
    "ConfigError",
    "RunOutcome",
    "RunResult",
    "load_config",
]
