"""Move a finished backup from staging into the backup root."""
from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .assembler import ARCHIVE_SUFFIX
from .errors import PlacementError
from .index import BackupIndexStore, BackupSetEntry
from .logs import LOG_ARCHIVE_NAME
from .staging import remove_path
from .utils import is_plain_name

LOGGER = logging.getLogger(__name__)

SINGLE_ARCHIVE_NAME = "NotesBackup.7z"
OWNED_DIRECTORIES = ("profile", "notes", "templates", "all_notebooks")


def owned_artifacts() -> Set[str]:
    """Names directly below the backup root that a single-version backup owns."""

    names = set(OWNED_DIRECTORIES)
    names.update(name + ARCHIVE_SUFFIX for name in OWNED_DIRECTORIES)
    names.add(SINGLE_ARCHIVE_NAME)
    names.add(LOG_ARCHIVE_NAME)
    return names


def unique_destination(path: Path) -> Path:
    """Return *path*, or ``name (n).ext`` with the smallest free ``n`` if it exists."""

    path = Path(path)
    if not os.path.lexists(path):
        return path
    stem, ext = os.path.splitext(path.name)
    counter = 1
    while True:
        candidate = path.with_name(f"{stem} ({counter}){ext}")
        if not os.path.lexists(candidate):
            return candidate
        counter += 1


def _replace_all(moves: Sequence[Tuple[Path, Path]]) -> None:
    """Move each source onto its target.

    Existing targets are renamed to ``.name.previous`` first and deleted only
    after every move succeeded. On failure the new content goes back to its
    source and the previous targets are restored.
    """

    previous: List[Tuple[Path, Path]] = []
    placed: List[Tuple[Path, Path]] = []
    try:
        for _, target in moves:
            if os.path.lexists(target):
                backup = target.with_name(f".{target.name}.previous")
                if os.path.lexists(backup):
                    remove_path(backup)
                target.rename(backup)
                previous.append((target, backup))
        for source, target in moves:
            LOGGER.debug("Moving '%s' to '%s'.", source, target)
            shutil.move(str(source), str(target))
            placed.append((source, target))
    except OSError:
        _restore(placed, previous)
        raise
    for _, backup in previous:
        remove_path(backup)


def _restore(placed: Sequence[Tuple[Path, Path]], previous: Sequence[Tuple[Path, Path]]) -> None:
    for source, target in reversed(placed):
        try:
            shutil.move(str(target), str(source))
        except OSError as exc:
            LOGGER.error("Could not move '%s' back to '%s': %s", target, source, exc)
    for target, backup in reversed(previous):
        try:
            if os.path.lexists(target):
                remove_path(target)
            backup.rename(target)
        except OSError as exc:
            LOGGER.error("Could not restore previous backup '%s' from '%s': %s", target, backup, exc)


class PlacementEngine:
    """Place staged content into the backup root and record it in the index."""

    def __init__(self, index: BackupIndexStore) -> None:
        self.index = index

    def place(
        self,
        base_path: Path,
        active_path: Path,
        retention: int,
        set_name: str,
        run_started_ms: int,
        zip_file: Optional[Path] = None,
    ) -> Path:
        """Return the destination of the placed backup.

        With ``retention == 1`` the backup root itself is the destination and
        the previous backup is overwritten. Otherwise a new, collision free
        backup set named after *set_name* is created and appended to the index.
        """

        base_path = Path(base_path)
        active_path = Path(active_path)
        try:
            if retention <= 1:
                return self._place_single(base_path, active_path, zip_file)
            return self._place_versioned(base_path, active_path, set_name, run_started_ms, zip_file)
        except OSError as exc:
            raise PlacementError(f"Moving the backup into '{base_path}' failed: {exc}") from exc

    # ------------------------------------------------------------------
    def _place_single(self, base_path: Path, active_path: Path, zip_file: Optional[Path]) -> Path:
        if zip_file is not None:
            moves = [(Path(zip_file), base_path / SINGLE_ARCHIVE_NAME)]
            LOGGER.info("Moving archive '%s' to '%s'.", zip_file, moves[0][1])
        else:
            moves = [(entry, base_path / entry.name) for entry in sorted(active_path.iterdir())]
        _replace_all(moves)
        if zip_file is None:
            remove_path(active_path)

        self.clear_backup_target(base_path, keep={target.name for _, target in moves})
        return base_path

    def _place_versioned(
        self,
        base_path: Path,
        active_path: Path,
        set_name: str,
        run_started_ms: int,
        zip_file: Optional[Path],
    ) -> Path:
        if not is_plain_name(set_name):
            raise PlacementError(f"Backup set name '{set_name}' is not a plain file name.")
        name = set_name + ARCHIVE_SUFFIX if zip_file is not None else set_name
        destination = unique_destination(base_path / name)
        source = Path(zip_file) if zip_file is not None else active_path
        LOGGER.info("Moving '%s' to '%s'.", source, destination)
        shutil.move(str(source), str(destination))
        self.index.append(BackupSetEntry(name=destination.name, date=run_started_ms))
        return destination

    # ------------------------------------------------------------------
    def clear_backup_target(self, base_path: Path, keep: Iterable[str] = ()) -> None:
        """Delete artifacts of a previous single-version backup, foreign files stay."""

        keep = set(keep)
        for name in sorted(owned_artifacts() - keep):
            path = Path(base_path) / name
            if os.path.lexists(path):
                LOGGER.info("Removing previous backup artifact '%s'.", path)
                remove_path(path)


__all__ = [
    "OWNED_DIRECTORIES",
    "PlacementEngine",
    "SINGLE_ARCHIVE_NAME",
    "owned_artifacts",
    "unique_destination",
]
