"""Encrypted storage for archive passwords and API tokens."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable

from cryptography.fernet import Fernet, InvalidToken

LOGGER = logging.getLogger(__name__)


class SecretError(Exception):
    """Raised when secrets cannot be read or written."""


class SecretNotFoundError(SecretError):
    """Raised when a requested secret has not been stored."""


@dataclass
class SecretManager:
    """Keep secret values in a JSON file, each value encrypted with Fernet."""

    key_path: Path
    secrets_path: Path

    def __post_init__(self) -> None:
        self.key_path = Path(self.key_path)
        self.secrets_path = Path(self.secrets_path)

    # ------------------------------------------------------------------
    def generate_key(self, overwrite: bool = False) -> Path:
        if self.key_path.exists() and not overwrite:
            raise SecretError(f"Key file '{self.key_path}' already exists.")
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        self.key_path.write_bytes(Fernet.generate_key())
        try:
            os.chmod(self.key_path, 0o600)
        except OSError:  # pragma: no cover - platform dependent
            LOGGER.debug("Could not restrict permissions of '%s'.", self.key_path)
        return self.key_path

    def ensure_key_available(self) -> None:
        if not self.key_path.exists():
            raise SecretError(
                f"Key file '{self.key_path}' not found. Create it with the 'init-key' command."
            )

    # ------------------------------------------------------------------
    def set_secret(self, name: str, value: str) -> None:
        if not name:
            raise SecretError("Secret name must not be empty.")
        data = self._read()
        data[name] = self._fernet().encrypt(value.encode("utf-8")).decode("ascii")
        self._write(data)

    def get_secret(self, name: str) -> str:
        data = self._read()
        if name not in data:
            raise SecretNotFoundError(name)
        try:
            return self._fernet().decrypt(data[name].encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise SecretError(f"Secret '{name}' cannot be decrypted with the current key.") from exc

    def has_secret(self, name: str) -> bool:
        return name in self._read()

    def delete_secret(self, name: str) -> bool:
        data = self._read()
        if name not in data:
            return False
        del data[name]
        self._write(data)
        return True

    def list_secrets(self) -> Iterable[str]:
        return sorted(self._read())

    # ------------------------------------------------------------------
    def _fernet(self) -> Fernet:
        self.ensure_key_available()
        try:
            return Fernet(self.key_path.read_bytes().strip())
        except ValueError as exc:
            raise SecretError(f"Key file '{self.key_path}' is not a valid key.") from exc

    def _read(self) -> Dict[str, str]:
        if not self.secrets_path.exists():
            return {}
        try:
            data = json.loads(self.secrets_path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise SecretError(f"Secrets file '{self.secrets_path}' is corrupted.") from exc
        if not isinstance(data, dict):
            raise SecretError(f"Secrets file '{self.secrets_path}' is corrupted.")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.secrets_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.secrets_path.with_name(self.secrets_path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.secrets_path)


__all__ = ["SecretError", "SecretManager", "SecretNotFoundError"]
