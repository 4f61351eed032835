"""Copy host profile data (keymap, styles, templates, plugins) into staging."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .errors import ExportError

LOGGER = logging.getLogger(__name__)

PROFILE_FILES = ("keymap-desktop.json", "userchrome.css", "userstyle.css")
PROFILE_DIRNAME = "profile"
TEMPLATES_DIRNAME = "templates"
PLUGINS_DIRNAME = "plugins"


def backup_file(src: Path, dst: Path) -> bool:
    """Copy *src* to *dst*; return ``False`` without writing when *src* is missing."""

    src, dst = Path(src), Path(dst)
    if not src.is_file():
        LOGGER.debug("Skipping missing file '%s'.", src)
        return False
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
    except OSError as exc:
        raise ExportError(f"Could not copy '{src}' to '{dst}': {exc}") from exc
    LOGGER.debug("Copied '%s' to '%s'.", src, dst)
    return True


def backup_folder(src: Path, dst: Path) -> bool:
    src, dst = Path(src), Path(dst)
    if not src.is_dir():
        LOGGER.debug("Skipping missing folder '%s'.", src)
        return False
    try:
        shutil.copytree(src, dst, dirs_exist_ok=True)
    except (OSError, shutil.Error) as exc:
        raise ExportError(f"Could not copy folder '{src}' to '{dst}': {exc}") from exc
    LOGGER.debug("Copied folder '%s' to '%s'.", src, dst)
    return True


def backup_profile_data(profile_dir: Path, active_path: Path, include_plugins: bool = True) -> None:
    profile_dir, active_path = Path(profile_dir), Path(active_path)
    LOGGER.info("Backing up profile data from '%s'.", profile_dir)
    profile_target = active_path / PROFILE_DIRNAME
    profile_target.mkdir(parents=True, exist_ok=True)
    for name in PROFILE_FILES:
        backup_file(profile_dir / name, profile_target / name)
    backup_folder(profile_dir / TEMPLATES_DIRNAME, active_path / TEMPLATES_DIRNAME)
    if include_plugins:
        backup_folder(profile_dir / PLUGINS_DIRNAME, profile_target / PLUGINS_DIRNAME)


__all__ = ["backup_file", "backup_folder", "backup_profile_data"]
