"""
In-Memory Storage Implementation

Used by tests and by sessions that should not leave anything on disk.
Documents are still held as JSON text so that the same encoding path
as the file backend is exercised.
"""

from typing import Optional

from budget_planner.models.audit import AuditEvent
from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    KeyValueEntityStore,
)


class MemoryEntityStore(KeyValueEntityStore):
    """Entity cache backed by a plain dict."""

    def __init__(self, key_prefix: str = "budget_app_"):
        super().__init__(key_prefix)
        self._documents: dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self._documents.get(key)

    def _write(self, key: str, value: str) -> None:
        self._documents[key] = value

    def _remove(self, key: str) -> bool:
        return self._documents.pop(key, None) is not None

    def _list_keys(self) -> list[str]:
        return list(self._documents)


class MemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
