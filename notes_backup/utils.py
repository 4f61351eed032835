"""Helper utilities shared by the backup modules."""
from __future__ import annotations

import ntpath
import os
import re
from typing import Iterable, List

_FORBIDDEN_CHARS = re.compile(r'[:*?"<>/|\\]')
_RESERVED_NAMES = re.compile(r"^(nul|prn|con|aux|lpt[0-9]|com[0-9])(\.|$)", re.IGNORECASE)


def valid_file_name(file_name: str) -> bool:
    """Return ``False`` when *file_name* cannot be used on common filesystems."""

    if _FORBIDDEN_CHARS.search(file_name):
        return False
    if _RESERVED_NAMES.search(file_name):
        return False
    return True


def safe_file_name(value: str, fallback: str = "notebook") -> str:
    """Return a filesystem-friendly version of *value*.

    Forbidden characters are replaced with underscores, reserved device names
    get an underscore prefix.
    """

    sanitized = _FORBIDDEN_CHARS.sub("_", value.strip())
    sanitized = re.sub(r"[\x00-\x1f]", "", sanitized).strip(" .")
    if not sanitized:
        return fallback
    if _RESERVED_NAMES.search(sanitized):
        sanitized = "_" + sanitized
    return sanitized


def unique_names(names: Iterable[str]) -> List[str]:
    """Suffix repeated entries of *names* with `` (n)`` so every name is unique."""

    seen = set()
    result: List[str] = []
    for name in names:
        candidate = name
        counter = 1
        while candidate.lower() in seen:
            candidate = f"{name} ({counter})"
            counter += 1
        seen.add(candidate.lower())
        result.append(candidate)
    return result


def is_plain_name(name: str) -> bool:
    """Return ``True`` when *name* is one non-empty path component."""

    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def is_subdirectory_or_equal(parent: str, child: str, pathmod=os.path) -> bool:
    """Return ``True`` if *child* is *parent* or lies below it.

    *pathmod* is :mod:`posixpath` or :mod:`ntpath` so that both path flavours
    can be checked on any host.
    """

    if not pathmod.isabs(parent) or not pathmod.isabs(child):
        return False
    parent_norm = pathmod.normcase(pathmod.normpath(parent))
    child_norm = pathmod.normcase(pathmod.normpath(child))
    if pathmod is ntpath and ntpath.splitdrive(parent_norm)[0] != ntpath.splitdrive(child_norm)[0]:
        return False
    relative = pathmod.relpath(child_norm, parent_norm)
    if relative == os.curdir:
        return True
    first = relative.split(pathmod.sep, 1)[0]
    return first != os.pardir and not pathmod.isabs(relative)


def mask_sensitive(value: str, secrets: Iterable[str]) -> str:
    """Replace occurrences of secret values in *value* with '***'."""

    masked = value
    for secret in secrets:
        if secret:
            masked = masked.replace(secret, "***")
    return masked


__all__ = [
    "is_plain_name",
    "is_subdirectory_or_equal",
    "mask_sensitive",
    "safe_file_name",
    "unique_names",
    "valid_file_name",
]
