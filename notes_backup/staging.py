"""Management of the staging directory used by one backup run."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from .errors import StagingError

LOGGER = logging.getLogger(__name__)


def remove_path(path: Path) -> None:
    """Delete a file, symlink or directory tree at *path*."""

    path = Path(path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def ensure_empty(base_path: Path, subfolder: Optional[str] = None) -> Path:
    """Return an existing, empty directory at ``base_path / subfolder``.

    Leftovers of an earlier failed run are removed.
    """

    target = Path(base_path) / subfolder if subfolder else Path(base_path)
    try:
        if target.exists() and not target.is_dir():
            raise StagingError(f"Staging path '{target}' exists and is not a directory.")
        target.mkdir(parents=True, exist_ok=True)
        for child in target.iterdir():
            LOGGER.debug("Removing leftover '%s' from staging.", child)
            remove_path(child)
    except OSError as exc:
        raise StagingError(f"Could not prepare staging directory '{target}': {exc}") from exc
    return target


def remove_staging(path: Path) -> None:
    try:
        remove_path(path)
    except OSError as exc:
        raise StagingError(f"Could not remove staging directory '{path}': {exc}") from exc


__all__ = ["ensure_empty", "remove_path", "remove_staging"]
