"""Exporter interface and the notebook export policy."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Protocol, Sequence

from .errors import ExportError
from .utils import safe_file_name, unique_names

LOGGER = logging.getLogger(__name__)

ALL_NOTEBOOKS_DIRNAME = "all_notebooks"
NOTES_DIRNAME = "notes"


@dataclass(frozen=True)
class Container:
    """A notebook of the note service."""

    id: str
    title: str
    parent_id: str = ""


class Exporter(Protocol):
    def list_containers(self) -> Iterable[Container]:
        ...

    def has_content(self, container_id: str) -> bool:
        ...

    def export_items(self, ids: Sequence[str], fmt: str, destination: Path) -> None:
        ...

    def last_change(self) -> int:
        ...


def descendants(containers: Sequence[Container], root_id: str) -> List[str]:
    """Return *root_id* followed by the ids of all nested containers."""

    children: Dict[str, List[str]] = {}
    for container in containers:
        children.setdefault(container.parent_id or "", []).append(container.id)
    result: List[str] = []
    pending = [root_id]
    while pending:
        current = pending.pop(0)
        if current in result:
            continue
        result.append(current)
        pending.extend(children.get(current, []))
    return result


def backup_notebooks(
    exporter: Exporter,
    active_path: Path,
    *,
    single_export: bool = False,
    fmt: str = "md",
) -> List[Path]:
    """Export notebooks into *active_path* and return the created export paths."""

    active_path = Path(active_path)
    try:
        containers = list(exporter.list_containers())
        if not containers:
            LOGGER.info("No notebooks to export.")
            return []

        if single_export:
            destination = active_path / ALL_NOTEBOOKS_DIRNAME
            LOGGER.info("Exporting %d notebooks into '%s'.", len(containers), destination)
            exporter.export_items([container.id for container in containers], fmt, destination)
            return [destination]

        selected = []
        for container in containers:
            if container.parent_id:
                continue
            ids = descendants(containers, container.id)
            if any(exporter.has_content(item) for item in ids):
                selected.append((container, ids))
            else:
                LOGGER.debug("Notebook '%s' is empty, skipping.", container.title)

        names = unique_names(safe_file_name(container.title) for container, _ in selected)
        exported: List[Path] = []
        for (container, ids), name in zip(selected, names):
            destination = active_path / NOTES_DIRNAME / name
            LOGGER.info("Exporting notebook '%s'.", container.title)
            exporter.export_items(ids, fmt, destination)
            exported.append(destination)
        return exported
    except ExportError:
        raise
    except Exception as exc:
        raise ExportError(f"Exporting notebooks failed: {exc}") from exc


__all__ = ["Container", "Exporter", "backup_notebooks", "descendants"]
