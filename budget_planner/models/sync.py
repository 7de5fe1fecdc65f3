"""
Synchronization Models

The local cache stores everything as one of these documents:
- VersionedSnapshot: one per (entity type, user), the cached collection
- SyncMetadata: one per user, whether local edits await confirmation
- LocalVersions: one per user, the last server version vector seen
- SyncQueueItem: the per-user list of unconfirmed pushes

All of them serialize to camelCase JSON so a cache directory written
by one client version can be read by the next.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import Field

from budget_planner.models.entities import (
    EntityType,
    UserVersions,
    WireModel,
    utc_now,
)


class SyncOperation(str, Enum):
    """Kind of change a queued item pushes to the server."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class VersionedSnapshot(WireModel):
    """
    The cache's unit of storage.

    data holds the collection in wire form (list of camelCase dicts).
    """

    data: list[dict[str, Any]] = Field(default_factory=list)
    version: int = Field(default=0, ge=0)
    last_modified: datetime = Field(default_factory=utc_now)
    user_id: str

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utc_now()) - self.last_modified


class SyncMetadata(WireModel):
    """Per-user sync bookkeeping."""

    user_id: str
    last_sync_attempt: Optional[datetime] = None
    last_successful_sync: Optional[datetime] = None
    pending_changes: bool = False


class LocalVersions(UserVersions):
    """The version vector last received from the server, plus when."""

    last_sync: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_server(
        cls,
        versions: UserVersions,
        last_sync: Optional[datetime] = None,
    ) -> "LocalVersions":
        return cls(
            **versions.model_dump(),
            last_sync=last_sync or utc_now(),
        )


class SyncQueueItem(WireModel):
    """
    A locally-applied change awaiting a successful push.

    retry_count counts failed pushes; once it reaches the configured
    cap the item is no longer attempted but stays in the queue.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    entity_type: EntityType
    entity_id: str
    operation: SyncOperation
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    retry_count: int = Field(default=0, ge=0)

    def is_exhausted(self, max_retries: int) -> bool:
        return self.retry_count >= max_retries


class SyncReport(WireModel):
    """Outcome of one version-vector sync run."""

    correlation_id: UUID
    full_sync: bool = False
    synced: list[EntityType] = Field(default_factory=list)
    skipped: list[EntityType] = Field(default_factory=list)
    failed: dict[EntityType, str] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return not self.failed
