"""Backup set names rendered from ``{token}`` templates."""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from .utils import valid_file_name

LOGGER = logging.getLogger(__name__)

DEFAULT_SET_NAME = "{YYYYMMDDHHmm}"

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")
# Longest tokens first; "[...]" escapes literal text, any other character passes through.
_FORMAT_TOKEN = re.compile(
    r"\[[^\[\]]*\]|YYYY|YY|MMMM|MMM|MM|M|Do|DD|D|dddd|ddd|d|HH|H|hh|h|mm|m|ss|s|SSS|A|a|X|x|.",
    re.DOTALL,
)


def _ordinal(day: int) -> str:
    if 10 <= day % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def _hour12(dt: datetime) -> int:
    return dt.hour % 12 or 12


_FORMATTERS: Dict[str, Callable[[datetime], str]] = {
    "YYYY": lambda dt: f"{dt.year:04d}",
    "YY": lambda dt: f"{dt.year % 100:02d}",
    "MMMM": lambda dt: _MONTHS[dt.month - 1],
    "MMM": lambda dt: _MONTHS[dt.month - 1][:3],
    "MM": lambda dt: f"{dt.month:02d}",
    "M": lambda dt: str(dt.month),
    "Do": lambda dt: _ordinal(dt.day),
    "DD": lambda dt: f"{dt.day:02d}",
    "D": lambda dt: str(dt.day),
    "dddd": lambda dt: _WEEKDAYS[(dt.weekday() + 1) % 7],
    "ddd": lambda dt: _WEEKDAYS[(dt.weekday() + 1) % 7][:3],
    "d": lambda dt: str((dt.weekday() + 1) % 7),
    "HH": lambda dt: f"{dt.hour:02d}",
    "H": lambda dt: str(dt.hour),
    "hh": lambda dt: f"{_hour12(dt):02d}",
    "h": lambda dt: str(_hour12(dt)),
    "mm": lambda dt: f"{dt.minute:02d}",
    "m": lambda dt: str(dt.minute),
    "ss": lambda dt: f"{dt.second:02d}",
    "s": lambda dt: str(dt.second),
    "SSS": lambda dt: f"{dt.microsecond // 1000:03d}",
    "A": lambda dt: "AM" if dt.hour < 12 else "PM",
    "a": lambda dt: "am" if dt.hour < 12 else "pm",
    "X": lambda dt: str(int(dt.timestamp())),
    "x": lambda dt: str(int(dt.timestamp() * 1000)),
}


def format_date(dt: datetime, pattern: str) -> str:
    """Format *dt* with a moment.js style *pattern* (``YYYY``, ``MM``, ``DD``, ...).

    Unknown characters are copied to the output unchanged.
    """

    parts = []
    for token in _FORMAT_TOKEN.findall(pattern):
        if len(token) >= 2 and token.startswith("[") and token.endswith("]"):
            parts.append(token[1:-1])
            continue
        formatter = _FORMATTERS.get(token)
        parts.append(formatter(dt) if formatter else token)
    return "".join(parts)


def render_set_name(template: str, dt: datetime) -> str:
    """Replace every ``{token}`` placeholder in *template* with the formatted date."""

    return _PLACEHOLDER.sub(lambda match: format_date(dt, match.group(1)), template)


def validate_set_name(template: Optional[str], dt: Optional[datetime] = None) -> Tuple[str, Optional[str]]:
    """Return a usable template and a warning when *template* had to be replaced."""

    dt = dt or datetime.now()
    if not template or not template.strip():
        return DEFAULT_SET_NAME, None
    rendered = render_set_name(template, dt)
    if not rendered.strip():
        warning = f"Backup set name '{template}' renders to an empty name, using '{DEFAULT_SET_NAME}'."
    elif not valid_file_name(rendered):
        warning = f"Backup set name '{rendered}' contains invalid characters, using '{DEFAULT_SET_NAME}'."
    elif rendered.strip() in (".", "..") or rendered.endswith((".", " ")):
        warning = f"Backup set name '{rendered}' is not usable as a file name, using '{DEFAULT_SET_NAME}'."
    else:
        return template, None
    LOGGER.warning(warning)
    return DEFAULT_SET_NAME, warning


__all__ = ["DEFAULT_SET_NAME", "format_date", "render_set_name", "validate_set_name"]
