"""
Storage Services Package

Provides the abstract local cache interface and its backends.
Ships an in-memory and a JSON-file backend; designed to be swappable.
"""

from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    CorruptSnapshotError,
    EntityCacheStore,
    KeyValueEntityStore,
    StorageError,
    StorageKeys,
    StorageUnavailableError,
)
from budget_planner.services.storage.json_file import (
    JsonFileEntityStore,
    JsonLinesAuditStorage,
)
from budget_planner.services.storage.memory import (
    MemoryAuditStorage,
    MemoryEntityStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "EntityCacheStore",
    "KeyValueEntityStore",
    "StorageKeys",
    # Exceptions
    "CorruptSnapshotError",
    "StorageError",
    "StorageUnavailableError",
    # Implementations
    "JsonFileEntityStore",
    "JsonLinesAuditStorage",
    "MemoryAuditStorage",
    "MemoryEntityStore",
]
