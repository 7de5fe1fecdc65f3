"""
JSON File Storage Implementation

DESIGN DECISION: Each storage key is one JSON file in a cache directory,
mirroring the one-key-per-document layout of browser local storage:
1. A user's cache can be inspected (and deleted) by hand
2. Writing one entity type never rewrites another
3. Writes go through a temp file and an atomic rename, so a crash
   leaves either the old or the new document, never half of one

TRADEOFFS:
- No locking: two processes sharing a directory race per file
- Every read hits the filesystem (collections are small)
"""

import json
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

from pydantic import ValidationError

from budget_planner.models.audit import AuditEvent
from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    KeyValueEntityStore,
    StorageError,
    StorageUnavailableError,
)


_SUFFIX = ".json"


class JsonFileEntityStore(KeyValueEntityStore):
    """Entity cache stored as one JSON file per key."""

    def __init__(self, data_dir: Path, key_prefix: str = "budget_app_"):
        super().__init__(key_prefix)
        self._dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        # Keys embed user ids, which may contain path separators
        return self._dir / f"{quote(key, safe='')}{_SUFFIX}"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageUnavailableError(f"Failed to read {path}: {e}") from e

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageUnavailableError(f"Failed to write {path}: {e}") from e

    def _remove(self, key: str) -> bool:
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageUnavailableError(f"Failed to remove {key}: {e}") from e

    def _list_keys(self) -> list[str]:
        if not self._dir.exists():
            return []
        return [
            unquote(path.name[:-len(_SUFFIX)])
            for path in self._dir.iterdir()
            if path.name.endswith(_SUFFIX)
        ]


class JsonLinesAuditStorage(AuditStorageInterface):
    """
    Audit log appended to a JSON-lines file.

    Audit events are append-only.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(event.model_dump_json() + "\n")
            return True
        except OSError as e:
            raise StorageError(f"Failed to append audit event: {e}") from e

    def _read_all(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        try:
            with self._path.open(encoding="utf-8") as handle:
                for line in handle:
                    if not line.strip():
                        continue
                    try:
                        events.append(AuditEvent.model_validate_json(line))
                    except (ValidationError, json.JSONDecodeError):
                        continue  # Skip malformed lines
        except OSError as e:
            raise StorageError(f"Failed to read audit log: {e}") from e
        return events

    async def get_events_by_correlation_id(self, correlation_id) -> list[AuditEvent]:
        events = [e for e in self._read_all() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_all()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_all()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
