"""Exporter backed by the note service's REST data API."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import requests

from .errors import ExportError
from .exporter import Container
from .utils import safe_file_name, unique_names

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:41184"
PAGE_LIMIT = 100
NOTE_FIELDS = "id,parent_id,title,body,created_time,updated_time,is_todo,todo_completed,source_url"
CHANGE_TYPES = ("folders", "notes", "resources", "tags")


@dataclass
class JoplinDataClient:
    """Read notebooks and notes over HTTP and write them as Markdown or JSON files."""

    token: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def _get(self, path: str, params: Optional[Dict[str, object]] = None) -> Dict:
        query = dict(params or {})
        if self.token:
            query["token"] = self.token
        url = self.base_url.rstrip("/") + path
        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ExportError(f"Request to '{url}' failed: {exc}") from exc
        if response.status_code != 200:
            raise ExportError(f"Request to '{url}' failed: HTTP {response.status_code} {response.text}")
        try:
            return response.json()
        except ValueError as exc:
            raise ExportError(f"Response of '{url}' is not valid JSON.") from exc

    def _paginate(self, path: str, params: Optional[Dict[str, object]] = None) -> Iterator[Dict]:
        page = 1
        while True:
            data = self._get(path, {**(params or {}), "page": page, "limit": PAGE_LIMIT})
            yield from data.get("items", [])
            if not data.get("has_more"):
                break
            page += 1

    # ------------------------------------------------------------------
    def list_containers(self) -> Iterator[Container]:
        for item in self._paginate("/folders", {"fields": "id,title,parent_id"}):
            yield Container(id=item["id"], title=item.get("title", ""), parent_id=item.get("parent_id") or "")

    def has_content(self, container_id: str) -> bool:
        data = self._get(f"/folders/{container_id}/notes", {"fields": "id", "limit": 1})
        return bool(data.get("items"))

    def export_items(self, ids: Sequence[str], fmt: str, destination: Path) -> None:
        if fmt not in ("md", "json"):
            raise ExportError(f"Unsupported export format '{fmt}'.")
        destination = Path(destination)
        folders = {
            item_id: self._get(f"/folders/{item_id}", {"fields": "id,title,parent_id"})
            for item_id in ids
        }
        directories = self._folder_directories(ids, folders, destination)
        for item_id in ids:
            directory = directories[item_id]
            directory.mkdir(parents=True, exist_ok=True)
            notes = list(self._paginate(f"/folders/{item_id}/notes", {"fields": NOTE_FIELDS}))
            names = unique_names(safe_file_name(note.get("title") or "untitled", "untitled") for note in notes)
            for note, name in zip(notes, names):
                self._write_note(directory, name, note, fmt)
            LOGGER.debug("Exported %d notes of folder '%s'.", len(notes), folders[item_id].get("title"))

    def last_change(self) -> int:
        last = 0
        for kind in CHANGE_TYPES:
            try:
                data = self._get(
                    f"/{kind}",
                    {"fields": "id,updated_time", "order_by": "updated_time", "order_dir": "DESC", "limit": 1},
                )
            except ExportError as exc:
                LOGGER.error("Could not read last change of %s: %s", kind, exc)
                continue
            items = data.get("items") or []
            if items:
                last = max(last, int(items[0].get("updated_time") or 0))
        return last

    # ------------------------------------------------------------------
    @staticmethod
    def _folder_directories(ids: Sequence[str], folders: Dict[str, Dict], destination: Path) -> Dict[str, Path]:
        """Map each folder id to its export directory, nested below its parent when exported too."""

        children: Dict[str, List[str]] = {}
        roots: List[str] = []
        for item_id in ids:
            parent = folders[item_id].get("parent_id") or ""
            if parent in folders and parent != item_id:
                children.setdefault(parent, []).append(item_id)
            else:
                roots.append(item_id)

        directories: Dict[str, Path] = {}
        if len(roots) == 1:
            directories[roots[0]] = destination
        else:
            names = unique_names(safe_file_name(folders[root].get("title") or "untitled") for root in roots)
            for root, name in zip(roots, names):
                directories[root] = destination / name
        pending = list(roots)
        while pending:
            current = pending.pop(0)
            kids = children.get(current, [])
            names = unique_names(safe_file_name(folders[kid].get("title") or "untitled") for kid in kids)
            for kid, name in zip(kids, names):
                directories[kid] = directories[current] / name
                pending.append(kid)
        for item_id in ids:
            # parent cycles leave folders unreachable from any root
            directories.setdefault(item_id, destination / safe_file_name(item_id))
        return directories

    @staticmethod
    def _write_note(directory: Path, name: str, note: Dict, fmt: str) -> None:
        if fmt == "json":
            path = directory / f"{name}.json"
            path.write_text(json.dumps(note, indent=2, ensure_ascii=False), encoding="utf-8")
        else:
            path = directory / f"{name}.md"
            path.write_text(f"# {note.get('title') or ''}\n\n{note.get('body') or ''}\n", encoding="utf-8")


__all__ = ["DEFAULT_BASE_URL", "JoplinDataClient"]
