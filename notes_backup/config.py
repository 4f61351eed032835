"""Configuration models and helpers for the backup tool."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .naming import DEFAULT_SET_NAME, validate_set_name
from .secrets import SecretManager, SecretNotFoundError
from .settings import SettingsStore

LOGGER = logging.getLogger(__name__)

ARCHIVE_NONE = "none"
ARCHIVE_PER_ITEM = "per_item"
ARCHIVE_SINGLE = "single_archive"
ARCHIVE_MODES = (ARCHIVE_NONE, ARCHIVE_PER_ITEM, ARCHIVE_SINGLE)

EXPORT_FORMATS = ("md", "json")
FILE_LOG_LEVELS = ("off", "debug", "info", "warning", "error")

MAX_RETENTION = 999

# Keys owned by other modules; never copied into ``BackupConfig.extra``.
_MANAGED_KEYS = {"backup_info"}


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""


class PasswordState(enum.IntEnum):
    INVALID = -1
    DISABLED = 0
    ENABLED = 1


@dataclass
class BackupConfig:
    path: str = ""
    create_subfolder: bool = True
    export_path: str = ""
    backup_retention: int = 1
    backup_interval: int = 24
    only_on_change: bool = False
    archive_mode: str = ARCHIVE_NONE
    compression_level: int = 0
    use_password: bool = False
    password_secret: str = "backup_password"
    password_repeat_secret: str = "backup_password_repeat"
    backup_set_name: str = DEFAULT_SET_NAME
    single_export: bool = False
    export_format: str = "md"
    backup_plugins: bool = True
    exec_finish_cmd: str = ""
    file_log_level: str = "error"
    last_backup: int = 0
    extra: Dict[str, object] = field(default_factory=dict)
    # Resolved from the secret store at load time, never persisted.
    password: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def effective_archive_mode(self) -> str:
        if self.password and self.archive_mode == ARCHIVE_NONE:
            return ARCHIVE_PER_ITEM
        return self.archive_mode

    def validate(self) -> None:
        if not 1 <= self.backup_retention <= MAX_RETENTION:
            raise ConfigError(
                f"'backup_retention' must be between 1 and {MAX_RETENTION}, got {self.backup_retention}."
            )
        if self.backup_interval < 0:
            raise ConfigError("'backup_interval' must not be negative.")
        if self.archive_mode not in ARCHIVE_MODES:
            raise ConfigError(
                f"Unknown archive mode '{self.archive_mode}'. Use one of: {', '.join(ARCHIVE_MODES)}."
            )
        if not 0 <= self.compression_level <= 9:
            raise ConfigError("'compression_level' must be between 0 and 9.")
        if self.export_format not in EXPORT_FORMATS:
            raise ConfigError(
                f"Unknown export format '{self.export_format}'. Use one of: {', '.join(EXPORT_FORMATS)}."
            )
        if self.file_log_level not in FILE_LOG_LEVELS:
            raise ConfigError(
                f"Unknown log level '{self.file_log_level}'. Use one of: {', '.join(FILE_LOG_LEVELS)}."
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "BackupConfig":
        data = data or {}
        known = {
            "path": str(data.get("path") or ""),
            "create_subfolder": _safe_bool(data.get("create_subfolder"), default=True),
            "export_path": str(data.get("export_path") or ""),
            "backup_retention": _safe_int(data.get("backup_retention"), default=1),
            "backup_interval": _safe_int(data.get("backup_interval"), default=24),
            "only_on_change": _safe_bool(data.get("only_on_change"), default=False),
            "archive_mode": str(data.get("archive_mode") or ARCHIVE_NONE),
            "compression_level": _safe_int(data.get("compression_level"), default=0),
            "use_password": _safe_bool(data.get("use_password"), default=False),
            "password_secret": str(data.get("password_secret") or "backup_password"),
            "password_repeat_secret": str(data.get("password_repeat_secret") or "backup_password_repeat"),
            "backup_set_name": str(data.get("backup_set_name") or DEFAULT_SET_NAME),
            "single_export": _safe_bool(data.get("single_export"), default=False),
            "export_format": str(data.get("export_format") or "md"),
            "backup_plugins": _safe_bool(data.get("backup_plugins"), default=True),
            "exec_finish_cmd": str(data.get("exec_finish_cmd") or ""),
            "file_log_level": str(data.get("file_log_level") or "error").lower(),
            "last_backup": _safe_int(data.get("last_backup"), default=0),
        }
        extra = {
            key: value
            for key, value in data.items()
            if key not in known and key not in _MANAGED_KEYS
        }
        config = cls(extra=extra, **known)
        config.validate()
        return config

    def to_dict(self) -> Dict:
        result: Dict[str, object] = {
            "path": self.path,
            "create_subfolder": self.create_subfolder,
            "export_path": self.export_path,
            "backup_retention": self.backup_retention,
            "backup_interval": self.backup_interval,
            "only_on_change": self.only_on_change,
            "archive_mode": self.archive_mode,
            "compression_level": self.compression_level,
            "use_password": self.use_password,
            "password_secret": self.password_secret,
            "password_repeat_secret": self.password_repeat_secret,
            "backup_set_name": self.backup_set_name,
            "single_export": self.single_export,
            "export_format": self.export_format,
            "backup_plugins": self.backup_plugins,
            "exec_finish_cmd": self.exec_finish_cmd,
            "file_log_level": self.file_log_level,
            "last_backup": self.last_backup,
        }
        result.update(self.extra)
        return result


# ---------------------------------------------------------------------------
def _safe_int(value, default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Value '{value}' cannot be converted to an integer.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Value '{value}' cannot be converted to an integer.")


def _safe_bool(value, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
    if isinstance(value, int):
        return bool(value)
    raise ConfigError(f"Value '{value}' cannot be converted to a boolean.")


# ---------------------------------------------------------------------------
def check_password(use_password: bool, password: Optional[str], password_repeat: Optional[str]) -> PasswordState:
    """Classify the password settings.

    Disabled passwords are ignored; an enabled password must be non-blank and
    equal to its repetition.
    """

    if not use_password:
        return PasswordState.DISABLED
    if password is None or password_repeat is None:
        return PasswordState.INVALID
    if password.strip() == "" or password != password_repeat:
        return PasswordState.INVALID
    return PasswordState.ENABLED


def resolve_password(config: BackupConfig, secret_manager: Optional[SecretManager]) -> PasswordState:
    """Load the archive password into *config* and clear stored values that cannot be used."""

    password = password_repeat = None
    if config.use_password and secret_manager is not None:
        password = _read_secret(secret_manager, config.password_secret)
        password_repeat = _read_secret(secret_manager, config.password_repeat_secret)

    state = check_password(config.use_password, password, password_repeat)
    if state is PasswordState.ENABLED:
        config.password = password
        return state

    config.password = None
    if secret_manager is not None and secret_manager.key_path.exists():
        for name in (config.password_secret, config.password_repeat_secret):
            if secret_manager.delete_secret(name):
                LOGGER.info("Stored password secret '%s' cleared.", name)
    return state


def _read_secret(secret_manager: SecretManager, name: str) -> Optional[str]:
    try:
        return secret_manager.get_secret(name)
    except SecretNotFoundError:
        return None


# ---------------------------------------------------------------------------
def load_config(
    store: SettingsStore,
    now: Optional[datetime] = None,
) -> Tuple[BackupConfig, List[str]]:
    """Build a :class:`BackupConfig` from *store*.

    Returns the config and the warnings collected while loading. An unusable
    backup set name template is reset to the default and written back.
    """

    config = BackupConfig.from_dict(store.values())
    warnings: List[str] = []
    template, warning = validate_set_name(config.backup_set_name, now)
    if warning:
        warnings.append(warning)
    if template != config.backup_set_name:
        config.backup_set_name = template
        store.set_value("backup_set_name", template)
    return config, warnings


def save_config(config: BackupConfig, store: SettingsStore) -> None:
    store.set_values(config.to_dict())


__all__ = [
    "ARCHIVE_MODES",
    "ARCHIVE_NONE",
    "ARCHIVE_PER_ITEM",
    "ARCHIVE_SINGLE",
    "BackupConfig",
    "ConfigError",
    "EXPORT_FORMATS",
    "FILE_LOG_LEVELS",
    "MAX_RETENTION",
    "PasswordState",
    "check_password",
    "load_config",
    "resolve_password",
    "save_config",
]
