"""Services package."""

from budget_planner.services.remote import (
    EntityEndpoint,
    HttpRemoteApi,
    RemoteApi,
    RemoteApiError,
    RemoteRequestError,
    RemoteUnavailableError,
)
from budget_planner.services.storage import (
    AuditStorageInterface,
    CorruptSnapshotError,
    EntityCacheStore,
    JsonFileEntityStore,
    JsonLinesAuditStorage,
    MemoryAuditStorage,
    MemoryEntityStore,
    StorageError,
    StorageUnavailableError,
)

__all__ = [
    # Remote API
    "EntityEndpoint",
    "HttpRemoteApi",
    "RemoteApi",
    "RemoteApiError",
    "RemoteRequestError",
    "RemoteUnavailableError",
    # Local storage
    "AuditStorageInterface",
    "CorruptSnapshotError",
    "EntityCacheStore",
    "JsonFileEntityStore",
    "JsonLinesAuditStorage",
    "MemoryAuditStorage",
    "MemoryEntityStore",
    "StorageError",
    "StorageUnavailableError",
]
