"""Optional compression of the staged backup."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .config import ARCHIVE_NONE, ARCHIVE_SINGLE, BackupConfig
from .errors import ArchiveError
from .sevenzip import SevenZip
from .staging import remove_path

LOGGER = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".7z"
TMP_ARCHIVE_NAME = "newBackupSet.7z"


class ArchiveAssembler:
    """Turn the staging directory into 7-Zip archives according to the archive mode."""

    def __init__(self, engine: SevenZip) -> None:
        self.engine = engine

    async def assemble(self, backup_root: Path, active_path: Path, config: BackupConfig) -> Optional[Path]:
        """Compress the staged files.

        Returns the path of the combined archive for ``single_archive`` mode,
        ``None`` when the staging directory itself is to be placed.
        """

        mode = config.effective_archive_mode
        if mode == ARCHIVE_NONE:
            return None
        options = [f"-mx{config.compression_level}"]
        if mode == ARCHIVE_SINGLE:
            return await self.single_archive(backup_root, active_path, config.password, options)
        await self.per_item(active_path, config.password, options)
        return None

    # ------------------------------------------------------------------
    async def single_archive(
        self,
        backup_root: Path,
        active_path: Path,
        password: Optional[str] = None,
        options: Optional[List[str]] = None,
    ) -> Path:
        target = Path(backup_root) / TMP_ARCHIVE_NAME
        if target.exists():
            LOGGER.info("Removing stale archive '%s' of an interrupted run.", target)
            try:
                remove_path(target)
            except OSError as exc:
                raise ArchiveError(f"Could not remove stale archive '{target}': {exc}") from exc

        LOGGER.info("Creating archive '%s'.", target)
        result = await self.engine.add(target, str(Path(active_path) / "*"), password, options)
        if not result.ok:
            raise ArchiveError(f"Creating archive '{target}' failed: {result.message}")
        return target

    async def per_item(
        self,
        active_path: Path,
        password: Optional[str] = None,
        options: Optional[List[str]] = None,
    ) -> List[Path]:
        archives: List[Path] = []
        for entry in sorted(Path(active_path).iterdir()):
            archive = entry.with_name(entry.name + ARCHIVE_SUFFIX)
            LOGGER.info("Archiving '%s'.", entry.name)
            result = await self.engine.add(archive, str(entry), password, options)
            if not result.ok:
                raise ArchiveError(f"Archiving '{entry}' failed: {result.message}")
            try:
                remove_path(entry)
            except OSError as exc:
                raise ArchiveError(f"Could not remove '{entry}' after archiving: {exc}") from exc
            archives.append(archive)
        return archives


__all__ = ["ARCHIVE_SUFFIX", "ArchiveAssembler", "TMP_ARCHIVE_NAME"]
