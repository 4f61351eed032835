"""Per-run log file written next to the backups."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from .errors import ArchiveError, RunLogError
from .sevenzip import SevenZip

LOGGER = logging.getLogger(__name__)
PACKAGE_LOGGER = logging.getLogger("notes_backup")

LOG_FILENAME = "backup.log"
LOG_ARCHIVE_NAME = "backuplog.7z"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class RunLog:
    """Capture the log records of one backup run in ``<backup root>/backup.log``."""

    def __init__(self, backup_root: Path, level: str = "error") -> None:
        self.path = Path(backup_root) / LOG_FILENAME
        self.level = _LEVELS.get(level.lower()) if level else None
        self._handler: Optional[logging.Handler] = None
        self._previous_level: Optional[int] = None

    @property
    def active(self) -> bool:
        return self._handler is not None

    # ------------------------------------------------------------------
    def start(self) -> None:
        self.delete()
        if self.level is None:
            return
        try:
            handler = logging.FileHandler(self.path, encoding="utf-8")
        except OSError as exc:
            raise RunLogError(f"Could not create log file '{self.path}': {exc}") from exc
        handler.setLevel(self.level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        self._previous_level = PACKAGE_LOGGER.level
        if PACKAGE_LOGGER.getEffectiveLevel() > self.level:
            PACKAGE_LOGGER.setLevel(self.level)
        PACKAGE_LOGGER.addHandler(handler)
        self._handler = handler

    def stop(self) -> None:
        if self._handler is None:
            return
        PACKAGE_LOGGER.removeHandler(self._handler)
        self._handler.close()
        self._handler = None
        if self._previous_level is not None:
            PACKAGE_LOGGER.setLevel(self._previous_level)
            self._previous_level = None

    def delete(self) -> None:
        if not self.path.exists():
            return
        try:
            self.path.unlink()
        except OSError as exc:
            LOGGER.error("Could not delete old log file '%s': %s", self.path, exc)

    # ------------------------------------------------------------------
    async def finalize(self, destination: Path, engine: SevenZip, password: Optional[str] = None) -> Optional[Path]:
        """Stop logging and move the log file to *destination*.

        An archive destination receives the log as an additional entry, a
        password protected directory destination gets ``backuplog.7z``.
        """

        self.stop()
        if not self.path.exists():
            return None
        destination = Path(destination)

        if destination.is_file():
            target = destination
        elif password:
            target = destination / LOG_ARCHIVE_NAME
        else:
            target = destination / LOG_FILENAME
            if target != self.path:
                shutil.move(str(self.path), str(target))
            return target

        result = await engine.add(target, str(self.path), password, ["-sdel"])
        if not result.ok:
            raise ArchiveError(f"Adding log file to '{target}' failed: {result.message}")
        return target


__all__ = ["LOG_ARCHIVE_NAME", "LOG_FILENAME", "RunLog"]
