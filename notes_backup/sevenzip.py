"""Asynchronous wrapper around the 7-Zip command line tool.

Exit codes of the tool are reported as :class:`ArchiveResult` values, only a
missing executable raises. See https://sevenzip.osdn.jp/chm/cmdline/exit_codes.htm
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import ArchiveToolNotFound
from .utils import mask_sensitive

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WARNING = 1
EXIT_FATAL = 2

BINARY_NAMES = ("7za", "7zz", "7z")
BIN_SUBDIR = "7zip-bin"
WRONG_PASSWORD_MARKER = "wrong password"


@dataclass
class ArchiveEntry:
    file_name: str
    size: int = 0
    method: str = ""
    is_dir: bool = False
    encrypted: bool = False


@dataclass
class ArchiveResult:
    """Outcome of one invocation of the archive tool."""

    ok: bool
    message: str = ""
    exit_code: Optional[int] = None
    output: str = ""
    entries: List[ArchiveEntry] = field(default_factory=list)
    method: str = ""

    def __bool__(self) -> bool:
        return self.ok


def resolve_binary(installation_dir: Optional[Path] = None) -> str:
    """Locate the 7-Zip executable.

    The copy shipped below ``<installation_dir>/7zip-bin`` wins over one found
    on ``PATH``.
    """

    suffix = ".exe" if sys.platform.startswith("win") else ""
    if installation_dir:
        for name in BINARY_NAMES:
            candidate = Path(installation_dir) / BIN_SUBDIR / f"{name}{suffix}"
            if candidate.is_file():
                return str(candidate)
    for name in BINARY_NAMES:
        found = shutil.which(name)
        if found:
            return found
    raise ArchiveToolNotFound(
        "7-Zip executable not found. Install p7zip/7-Zip or place it in "
        f"'{Path(installation_dir or '.') / BIN_SUBDIR}'."
    )


def _password_options(password: Optional[str]) -> List[str]:
    return [f"-p{password}"] if password else []


def parse_technical_listing(output: str) -> List[ArchiveEntry]:
    """Parse the ``-slt`` listing of ``7z l`` into entries."""

    entries: List[ArchiveEntry] = []
    _, separator, body = output.partition("\n----------")
    if not separator:
        return entries
    block: Dict[str, str] = {}
    for line in body.splitlines()[1:] + [""]:
        line = line.strip()
        if not line:
            if "Path" in block:
                entries.append(
                    ArchiveEntry(
                        file_name=block["Path"],
                        size=int(block.get("Size") or 0),
                        method=block.get("Method", ""),
                        is_dir=block.get("Folder") == "+" or "D" in block.get("Attributes", "")[:1],
                        encrypted=block.get("Encrypted") == "+",
                    )
                )
            block = {}
            continue
        key, sep, value = line.partition(" = ")
        if sep:
            block[key] = value
    return entries


class SevenZip:
    """Run 7-Zip commands one at a time and translate their exit codes."""

    def __init__(self, binary: Optional[str] = None, installation_dir: Optional[Path] = None) -> None:
        self._binary = binary
        self._installation_dir = installation_dir

    @property
    def binary(self) -> str:
        if self._binary is None:
            self._binary = resolve_binary(self._installation_dir)
        return self._binary

    # ------------------------------------------------------------------
    async def _run(self, args: Sequence[str], password: Optional[str] = None) -> ArchiveResult:
        command = [self.binary, *args]
        masked = mask_sensitive(subprocess.list2cmdline(command), [password] if password else [])
        LOGGER.debug("Running archive tool: %s", masked)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ArchiveToolNotFound(f"7-Zip executable '{self.binary}' cannot be started.") from exc
        stdout, stderr = await process.communicate()
        out_text = stdout.decode("utf-8", errors="replace")
        err_text = stderr.decode("utf-8", errors="replace").strip()
        if err_text:
            LOGGER.debug("7-Zip STDERR: %s", err_text)

        code = process.returncode
        if code == EXIT_OK:
            return ArchiveResult(ok=True, exit_code=code, output=out_text)

        detail = next(
            (line.strip() for line in err_text.splitlines() if line.strip()),
            "",
        )
        message = f"Exited with code {code}"
        if detail:
            message = f"{message}: {detail}"
        return ArchiveResult(ok=False, message=message, exit_code=code, output=out_text + err_text)

    # ------------------------------------------------------------------
    async def add(
        self,
        archive: Path,
        source: str,
        password: Optional[str] = None,
        options: Optional[Sequence[str]] = None,
    ) -> ArchiveResult:
        """Add *source* (a path or wildcard) to *archive*, creating or updating it."""

        args = ["a", str(archive), str(source), *(options or [])]
        if password:
            args.extend(_password_options(password))
            if str(archive).lower().endswith(".7z"):
                args.append("-mhe=on")
        result = await self._run(args, password)
        if result.ok:
            LOGGER.debug("Added '%s' to archive '%s'.", source, archive)
        else:
            LOGGER.error("Adding '%s' to archive '%s' failed: %s", source, archive, result.message)
        return result

    async def list(self, archive: Path, password: Optional[str] = None) -> ArchiveResult:
        result = await self._run(["l", "-slt", str(archive), *_password_options(password)], password)
        if result.ok:
            result.entries = parse_technical_listing(result.output)
        return result

    async def test(self, archive: Path, password: Optional[str] = None) -> ArchiveResult:
        """Check the integrity of *archive*; ``method`` names the compression/encryption method."""

        result = await self._run(["t", str(archive), *_password_options(password)], password)
        if not result.ok:
            return result
        listing = await self.list(archive, password)
        if listing.ok:
            result.entries = listing.entries
            result.method = next((entry.method for entry in listing.entries if entry.method), "")
        return result

    async def password_protected(self, archive: Path) -> bool:
        """Return ``True`` when *archive* rejects a deliberately wrong password."""

        wrong_password = "wrong-" + secrets.token_hex(8)
        result = await self._run(["t", str(archive), f"-p{wrong_password}"], wrong_password)
        if result.ok:
            return False
        return result.exit_code == EXIT_FATAL and WRONG_PASSWORD_MARKER in result.output.lower()


__all__ = [
    "ArchiveEntry",
    "ArchiveResult",
    "SevenZip",
    "parse_technical_listing",
    "resolve_binary",
]
