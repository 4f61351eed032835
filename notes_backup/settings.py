"""YAML backed key-value store holding the backup settings."""
from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import yaml

LOGGER = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.yaml"

ChangeCallback = Callable[[List[str]], None]


class SettingsStore:
    """Key-value settings persisted as a YAML document.

    The document has a ``settings`` section owned by the backup tool and a
    ``global`` section with read-only values of the host application (for
    example ``profile_dir``).
    """

    def __init__(self, path: Path = Path(SETTINGS_FILENAME), defaults: Optional[Dict[str, Any]] = None) -> None:
        self.path = Path(path)
        self._defaults = dict(defaults or {})
        self._settings: Dict[str, Any] = {}
        self._global: Dict[str, Any] = {}
        self._callbacks: List[ChangeCallback] = []
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        if not self.path.exists():
            self._settings, self._global = {}, {}
            return
        data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file '{self.path}' must contain a mapping.")
        self._settings = dict(data.get("settings") or {})
        self._global = dict(data.get("global") or {})

    def get_value(self, key: str) -> Any:
        if key in self._settings:
            return copy.deepcopy(self._settings[key])
        return copy.deepcopy(self._defaults.get(key))

    def get_global_value(self, key: str) -> Any:
        return copy.deepcopy(self._global.get(key))

    def values(self) -> Dict[str, Any]:
        merged = dict(self._defaults)
        merged.update(self._settings)
        return copy.deepcopy(merged)

    def set_value(self, key: str, value: Any) -> None:
        self.set_values({key: value})

    def set_values(self, values: Dict[str, Any]) -> None:
        changed = [key for key, value in values.items() if self._settings.get(key, object()) != value]
        self._settings.update(copy.deepcopy(values))
        self._save()
        if changed:
            self._notify(changed)

    def set_global_values(self, values: Dict[str, Any]) -> None:
        self._global.update(copy.deepcopy(values))
        self._save()

    def on_change(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    def _notify(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        for callback in list(self._callbacks):
            callback(keys)

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"settings": self._settings, "global": self._global}
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, allow_unicode=True, sort_keys=False, default_flow_style=False)
        os.replace(tmp_path, self.path)
        LOGGER.debug("Settings written to '%s'.", self.path)


__all__ = ["SETTINGS_FILENAME", "SettingsStore"]
