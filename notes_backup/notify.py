"""User notifications for backup results."""
from __future__ import annotations

import sys
from typing import Optional, Protocol, TextIO


class Notifier(Protocol):
    def error(self, message: str, title: Optional[str] = None) -> None:
        ...

    def info(self, message: str) -> None:
        ...


class ConsoleNotifier:
    """Report errors on stderr and messages on stdout."""

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None) -> None:
        self._out = out
        self._err = err

    def error(self, message: str, title: Optional[str] = None) -> None:
        stream = self._err or sys.stderr
        if title:
            print(f"Backup: {title}", file=stream)
        print(f"Error: {message}", file=stream)

    def info(self, message: str) -> None:
        print(message, file=self._out or sys.stdout)


__all__ = ["ConsoleNotifier", "Notifier"]
