"""Persisted index of the backup sets kept in the backup root."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import List, Sequence

from .settings import SettingsStore
from .utils import is_plain_name

LOGGER = logging.getLogger(__name__)

INDEX_KEY = "backup_info"


@dataclass(frozen=True)
class BackupSetEntry:
    """One known backup set: its name below the backup root and creation time (epoch ms)."""

    name: str
    date: int


class BackupIndexStore:
    """Load and save the backup index as one JSON value in the settings store."""

    def __init__(self, store: SettingsStore, key: str = INDEX_KEY) -> None:
        self._store = store
        self._key = key

    def load(self) -> List[BackupSetEntry]:
        raw = self._store.get_value(self._key)
        if raw in (None, ""):
            return []
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError:
            LOGGER.warning("Backup index is not valid JSON and is ignored: %r", raw)
            return []
        if not isinstance(data, list):
            LOGGER.warning("Backup index must be a list, ignoring value of type %s.", type(data).__name__)
            return []

        entries: List[BackupSetEntry] = []
        for item in data:
            try:
                entry = BackupSetEntry(name=str(item["name"]), date=int(item["date"]))
            except (KeyError, TypeError, ValueError):
                LOGGER.warning("Skipping malformed backup index entry: %r", item)
                continue
            if not is_plain_name(entry.name):
                LOGGER.warning("Skipping backup index entry outside the backup root: %r", item)
                continue
            entries.append(entry)
        return entries

    def save(self, entries: Sequence[BackupSetEntry]) -> None:
        payload = json.dumps([asdict(entry) for entry in entries])
        self._store.set_value(self._key, payload)

    def append(self, entry: BackupSetEntry) -> List[BackupSetEntry]:
        entries = self.load()
        entries.append(entry)
        self.save(entries)
        LOGGER.debug("Backup set '%s' added to the index.", entry.name)
        return entries


__all__ = ["BackupIndexStore", "BackupSetEntry", "INDEX_KEY"]
