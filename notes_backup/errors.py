"""Exception hierarchy for backup runs."""
from __future__ import annotations


class BackupError(RuntimeError):
    """Base exception for failures that abort a backup run."""


class StagingError(BackupError):
    """Raised when the staging directory cannot be created or cleared."""


class ExportError(BackupError):
    """Raised when exporting notes or profile data into staging fails."""


class ArchiveError(BackupError):
    """Raised when the archive tool reports a failed operation."""


class ArchiveToolNotFound(ArchiveError):
    """Raised when no 7-Zip executable can be located."""


class PlacementError(BackupError):
    """Raised when the finished backup cannot be moved into the backup root."""


class RetentionError(BackupError):
    """Raised when an expired backup set cannot be deleted."""


class RunLogError(BackupError):
    """Raised when the log file of a run cannot be created."""


__all__ = [
    "ArchiveError",
    "ArchiveToolNotFound",
    "BackupError",
    "ExportError",
    "PlacementError",
    "RetentionError",
    "RunLogError",
    "StagingError",
]
