from __future__ import annotations

"""
Durable store of the last discovered field mapping per work-item category.

Semantics: last-write-wins keyed by category, no merge. A new discovery replaces the
previous mapping for that category wholesale.

File layout example:
{
  "epic": {"work_item_category": "epic", "issue_type_name": "Epic", "fields": [...], ...},
  "story": {...}
}
"""

from typing import Dict, Optional, Protocol
import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError

from issue_autofill.models import FieldMapping

logger = logging.getLogger(__name__)

# One lock per cache file, shared by every JsonMappingCache opened on it
_PATH_LOCKS: Dict[str, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.Lock()
        return lock


class MappingCache(Protocol):
    def get(self, category: str) -> Optional[FieldMapping]:
        ...

    def set(self, category: str, mapping: FieldMapping) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryMappingCache:
    def __init__(self) -> None:
        self._items: Dict[str, FieldMapping] = {}

    def get(self, category: str) -> Optional[FieldMapping]:
        return self._items.get(category)

    def set(self, category: str, mapping: FieldMapping) -> None:
        self._items[category] = mapping

    def clear(self) -> None:
        self._items.clear()


class JsonMappingCache:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def _read(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as ex:
            logger.warning("Field mapping cache unreadable at %s: %s", self.path, ex)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with open(temp_fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(temp_path, self.path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

    def get(self, category: str) -> Optional[FieldMapping]:
        with self._lock:
            raw = self._read().get(category)
        if not isinstance(raw, dict):
            return None
        try:
            return FieldMapping.model_validate(raw)
        except ValidationError as ex:
            logger.warning("Discarding malformed cached mapping for %s: %s", category, ex)
            return None

    def set(self, category: str, mapping: FieldMapping) -> None:
        with self._lock:
            data = self._read()
            data[category] = mapping.model_dump(mode="json", by_alias=True)
            self._write(data)

    def clear(self) -> None:
        with self._lock:
            if self.path.exists():
                self.path.unlink()
