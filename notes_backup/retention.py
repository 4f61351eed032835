"""Retention policy enforcement for versioned backup sets."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from .errors import RetentionError
from .index import BackupIndexStore, BackupSetEntry
from .staging import remove_path

LOGGER = logging.getLogger(__name__)


@dataclass
class RetentionSummary:
    removed: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)


class RetentionPruner:
    """Keep at most ``retention`` backup sets, the index decides which are the oldest."""

    def __init__(self, index: BackupIndexStore) -> None:
        self.index = index

    def reconcile(self, base_path: Path) -> Tuple[List[BackupSetEntry], List[BackupSetEntry]]:
        """Drop index entries whose backup set is gone from disk.

        Returns the remaining and the dropped entries; the index is saved
        right away when something was dropped.
        """

        existing: List[BackupSetEntry] = []
        dropped: List[BackupSetEntry] = []
        for entry in self.index.load():
            if os.path.lexists(Path(base_path) / entry.name):
                existing.append(entry)
            else:
                LOGGER.info("Backup set '%s' no longer exists, removing it from the index.", entry.name)
                dropped.append(entry)
        if dropped:
            self.index.save(existing)
        return existing, dropped

    def prune(self, base_path: Path, retention: int) -> RetentionSummary:
        base_path = Path(base_path)
        entries, dropped = self.reconcile(base_path)
        summary = RetentionSummary(dropped=[entry.name for entry in dropped])

        if len(entries) > retention:
            entries.sort(key=lambda entry: entry.date, reverse=True)
            while len(entries) > retention:
                expired = entries.pop(retention)
                path = base_path / expired.name
                LOGGER.info("Deleting old backup set '%s'.", path)
                try:
                    remove_path(path)
                except OSError as exc:
                    raise RetentionError(f"Could not delete old backup set '{path}': {exc}") from exc
                self.index.save(entries)
                summary.removed.append(expired.name)

        summary.kept = [entry.name for entry in entries]
        return summary


__all__ = ["RetentionPruner", "RetentionSummary"]
