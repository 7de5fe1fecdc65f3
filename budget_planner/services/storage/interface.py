"""
Abstract Storage Interface

DESIGN DECISION: The local cache is accessed through an explicit
repository interface keyed by (entity type, user id) rather than by
hand-built key strings. This allows us to:
1. Swap the JSON-file store for any other key-value backend
2. Use in-memory storage for testing
3. Keep the sync logic decoupled from how documents are laid out

Per user the layout is: one snapshot document per entity type, one
document holding the last-known server version vector, one holding
sync metadata and one holding the pending sync queue.

There is no cross-process locking. Two sessions writing the same key
race, and the last write wins.
"""

from abc import ABC, abstractmethod
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from budget_planner.models.audit import AuditEvent
from budget_planner.models.entities import EntityType
from budget_planner.models.sync import (
    LocalVersions,
    SyncMetadata,
    SyncQueueItem,
    VersionedSnapshot,
)


DocumentT = TypeVar("DocumentT", bound=BaseModel)


class StorageError(Exception):
    """Base exception for local storage operations."""
    pass


class StorageUnavailableError(StorageError):
    """The backend could not be read or written (quota, permissions, I/O)."""
    pass


class CorruptSnapshotError(StorageError):
    """A stored document could not be decoded."""
    pass


class StorageKeys:
    """Builds the storage key for each per-user document."""

    def __init__(self, prefix: str = "budget_app_"):
        self.prefix = prefix

    def data(self, entity_type: EntityType, user_id: str) -> str:
        return f"{self.prefix}data_{entity_type.value}_{user_id}"

    def versions(self, user_id: str) -> str:
        return f"{self.prefix}versions_{user_id}"

    def sync_metadata(self, user_id: str) -> str:
        return f"{self.prefix}sync_metadata_{user_id}"

    def sync_queue(self, user_id: str) -> str:
        return f"{self.prefix}sync_queue_{user_id}"

    def for_user(self, user_id: str) -> set[str]:
        keys = {self.data(entity_type, user_id) for entity_type in EntityType}
        keys.update((
            self.versions(user_id),
            self.sync_metadata(user_id),
            self.sync_queue(user_id),
        ))
        return keys

    def belongs_to(self, key: str, user_id: str) -> bool:
        # Exact match; a suffix check would confuse "a_1" with "1"
        return key in self.for_user(user_id)


class EntityCacheStore(ABC):
    """
    Abstract interface for the local entity cache.

    Any backend (in-memory, JSON files, browser storage bridge)
    must implement these methods.
    """

    @abstractmethod
    async def get(
        self,
        entity_type: EntityType,
        user_id: str,
    ) -> Optional[VersionedSnapshot]:
        """
        Read the cached snapshot of one entity collection.

        Returns:
            The snapshot, or None if nothing is cached

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def put(
        self,
        entity_type: EntityType,
        user_id: str,
        snapshot: VersionedSnapshot,
    ) -> None:
        """
        Replace the cached snapshot of one entity collection.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, entity_type: EntityType, user_id: str) -> None:
        """Drop a cached snapshot. Missing snapshots are ignored."""
        pass

    @abstractmethod
    async def get_sync_metadata(self, user_id: str) -> Optional[SyncMetadata]:
        pass

    @abstractmethod
    async def put_sync_metadata(self, metadata: SyncMetadata) -> None:
        pass

    @abstractmethod
    async def get_versions(self, user_id: str) -> Optional[LocalVersions]:
        """The version vector remembered from the last sync, if any."""
        pass

    @abstractmethod
    async def put_versions(self, user_id: str, versions: LocalVersions) -> None:
        pass

    @abstractmethod
    async def get_queue(self, user_id: str) -> list[SyncQueueItem]:
        """Pending sync queue in insertion order (empty if none)."""
        pass

    @abstractmethod
    async def put_queue(self, user_id: str, items: list[SyncQueueItem]) -> None:
        pass

    @abstractmethod
    async def clear_user(self, user_id: str) -> int:
        """
        Remove every document belonging to a user.

        Returns:
            Number of documents removed
        """
        pass


class KeyValueEntityStore(EntityCacheStore):
    """
    EntityCacheStore over a flat string key-value backend.

    Subclasses only provide raw reads and writes of JSON text; key
    layout and (de)serialization live here.
    """

    def __init__(self, key_prefix: str = "budget_app_"):
        self.keys = StorageKeys(key_prefix)

    @abstractmethod
    def _read(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def _remove(self, key: str) -> bool:
        pass

    @abstractmethod
    def _list_keys(self) -> list[str]:
        pass

    def _load(self, key: str, model: type[DocumentT]) -> Optional[DocumentT]:
        raw = self._read(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            raise CorruptSnapshotError(f"Cannot decode {key}: {e}") from e

    def _save(self, key: str, document: BaseModel) -> None:
        self._write(key, document.model_dump_json(by_alias=True))

    async def get(
        self,
        entity_type: EntityType,
        user_id: str,
    ) -> Optional[VersionedSnapshot]:
        return self._load(self.keys.data(entity_type, user_id), VersionedSnapshot)

    async def put(
        self,
        entity_type: EntityType,
        user_id: str,
        snapshot: VersionedSnapshot,
    ) -> None:
        self._save(self.keys.data(entity_type, user_id), snapshot)

    async def delete(self, entity_type: EntityType, user_id: str) -> None:
        self._remove(self.keys.data(entity_type, user_id))

    async def get_sync_metadata(self, user_id: str) -> Optional[SyncMetadata]:
        return self._load(self.keys.sync_metadata(user_id), SyncMetadata)

    async def put_sync_metadata(self, metadata: SyncMetadata) -> None:
        self._save(self.keys.sync_metadata(metadata.user_id), metadata)

    async def get_versions(self, user_id: str) -> Optional[LocalVersions]:
        return self._load(self.keys.versions(user_id), LocalVersions)

    async def put_versions(self, user_id: str, versions: LocalVersions) -> None:
        self._save(self.keys.versions(user_id), versions)

    async def get_queue(self, user_id: str) -> list[SyncQueueItem]:
        raw = self._read(self.keys.sync_queue(user_id))
        if raw is None:
            return []
        try:
            return _QueueDocument.model_validate_json(raw).items
        except ValidationError as e:
            raise CorruptSnapshotError(f"Cannot decode sync queue: {e}") from e

    async def put_queue(self, user_id: str, items: list[SyncQueueItem]) -> None:
        self._save(self.keys.sync_queue(user_id), _QueueDocument(items=items))

    async def clear_user(self, user_id: str) -> int:
        removed = 0
        for key in self._list_keys():
            if self.keys.belongs_to(key, user_id) and self._remove(key):
                removed += 1
        return removed


class _QueueDocument(BaseModel):
    items: list[SyncQueueItem]


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(self, correlation_id) -> list[AuditEvent]:
        """All events of one user action or sync run, oldest first."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """All events for one entity, oldest first."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass
