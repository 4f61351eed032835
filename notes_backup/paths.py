"""Resolution of the backup root and staging directory."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from .config import ConfigError
from .utils import is_subdirectory_or_equal

LOGGER = logging.getLogger(__name__)

DEFAULT_SUBFOLDER = "NotesBackup"
STAGING_DIRNAME = "activeBackupJob"


def _normalize(path: Path) -> str:
    return os.path.normcase(os.path.normpath(os.path.abspath(str(path))))


class PathResolver:
    """Turn configured path strings into absolute, validated directories."""

    def __init__(
        self,
        profile_dir: Path,
        home_dir: Optional[Path] = None,
        subfolder: str = DEFAULT_SUBFOLDER,
    ) -> None:
        self.profile_dir = Path(profile_dir)
        self.home_dir = Path(home_dir) if home_dir is not None else Path.home()
        self.subfolder = subfolder

    # ------------------------------------------------------------------
    def _absolute(self, configured: str) -> Path:
        path = Path(configured.strip()).expanduser()
        if not path.is_absolute():
            path = self.profile_dir / path
        return Path(os.path.normpath(os.path.abspath(str(path))))

    def _reject_host_directories(self, path: Path, what: str) -> None:
        if _normalize(path) == _normalize(self.profile_dir):
            raise ConfigError(f"The {what} '{path}' must not be the profile directory.")
        if _normalize(path) == _normalize(self.home_dir):
            raise ConfigError(f"The {what} '{path}' must not be the home directory.")

    # ------------------------------------------------------------------
    def backup_root(self, configured: str, create_subfolder: bool = False) -> Tuple[Path, List[str]]:
        """Return the backup root and non-fatal warnings.

        Raises :class:`ConfigError` when no path is configured or it points to
        the profile or home directory. A missing subfolder is created when its
        parent exists; if that fails the parent is used and a warning returned.
        """

        if not configured or not configured.strip():
            raise ConfigError("No backup path is configured.")
        root = self._absolute(configured)
        self._reject_host_directories(root, "backup path")

        warnings: List[str] = []
        if not create_subfolder:
            return root, warnings

        subfolder = root / self.subfolder
        if not subfolder.exists() and root.is_dir():
            try:
                subfolder.mkdir()
                LOGGER.info("Created backup subfolder '%s'.", subfolder)
            except OSError as exc:
                message = f"Could not create backup subfolder '{subfolder}': {exc}"
                LOGGER.error(message)
                warnings.append(message)
                return root, warnings
        return subfolder, warnings

    def active_path(self, backup_root: Path, export_path: str = "") -> Path:
        """Return the staging directory for one run."""

        if not export_path or not export_path.strip():
            return Path(backup_root) / STAGING_DIRNAME
        active = self._absolute(export_path)
        self._reject_host_directories(active, "export path")
        if is_subdirectory_or_equal(str(active), str(backup_root)):
            raise ConfigError(
                f"The export path '{active}' must not be the backup path or one of its parents."
            )
        return active


__all__ = ["DEFAULT_SUBFOLDER", "PathResolver", "STAGING_DIRNAME"]
