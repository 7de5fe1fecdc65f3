"""
Sync Coordinator

Local-first access to the user's entities:
1. Reads are served from the local snapshot whenever possible
2. Local edits are applied optimistically, queued, and pushed
3. Server changes are pulled per entity type, gated by a version vector

DESIGN DECISION: Staleness beats unavailability. A failed fetch falls
back to whatever snapshot exists, and a failing local store only
degrades caching; neither surfaces as an error while there is still
something to show.

DESIGN DECISION: Unconfirmed local edits are never overwritten by a
fetch. While the queue holds items for a user, reads keep serving the
local snapshot and syncs skip the affected entity types. With a
conflict strategy configured, syncs fetch those types anyway and keep
whichever copy of each edited record resolve_conflict picks.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog

from budget_planner.audit import AuditLogger, create_correlation_id
from budget_planner.config import SyncSettings, get_settings
from budget_planner.models.audit import AuditEventBuilder
from budget_planner.models.entities import (
    VERSIONED_ENTITY_TYPES,
    EntityType,
    UserVersions,
    utc_now,
)
from budget_planner.models.sync import (
    LocalVersions,
    SyncMetadata,
    SyncOperation,
    SyncQueueItem,
    SyncReport,
    VersionedSnapshot,
)
from budget_planner.services.remote import RemoteApi, RemoteApiError
from budget_planner.services.storage import EntityCacheStore, StorageError
from budget_planner.sync.policies import (
    ConflictStrategy,
    Freshness,
    FreshnessPolicy,
    conflict_strategy_from_settings,
    policy_from_settings,
    resolve_conflict,
)
from budget_planner.sync.queue import SyncQueue


logger = structlog.get_logger(__name__)

FetchRemote = Callable[[], Awaitable[list[dict[str, Any]]]]
UserIdProvider = Callable[[], Awaitable[str]]


class EntityLoadError(Exception):
    """Nothing could be served: the fetch failed and there is no snapshot."""

    def __init__(self, entity_type: EntityType):
        self.entity_type = entity_type
        super().__init__(f"Failed to load {entity_type.value}")


def static_user(user_id: str) -> UserIdProvider:
    """User id provider for a fixed, already-known user."""
    async def provider() -> str:
        return user_id
    return provider


def _apply_operation(
    records: list[dict[str, Any]],
    operation: SyncOperation,
    entity_id: str,
    payload: dict[str, Any],
) -> list[dict[str, Any]]:
    """Collection after one create/update/delete, matched by "id"."""
    others = [record for record in records if record.get("id") != entity_id]
    if operation is SyncOperation.DELETE:
        return others
    if operation is SyncOperation.CREATE:
        return others + [payload]
    updated = [payload if record.get("id") == entity_id else record for record in records]
    if len(others) == len(records):
        updated.append(payload)
    return updated


class SyncCoordinator:
    """
    Owns every interaction between the local store and the remote API.

    All methods take an optional user_id; when omitted the injected
    provider is asked for the current user.
    """

    def __init__(
        self,
        store: EntityCacheStore,
        remote: RemoteApi,
        user_id_provider: UserIdProvider,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SyncSettings] = None,
        policy: Optional[FreshnessPolicy] = None,
        conflict_strategy: Optional[ConflictStrategy] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._remote = remote
        self._user_id_provider = user_id_provider
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().sync
        self._policy = policy or policy_from_settings(self._settings)
        self._conflict_strategy = (
            conflict_strategy or conflict_strategy_from_settings(self._settings)
        )
        self._clock = clock
        self.queue = SyncQueue(store, max_retries=self._settings.max_retries)

        self._background_tasks: set[asyncio.Task] = set()
        self._refreshing: set[tuple[EntityType, str]] = set()
        self._drain_locks: dict[str, asyncio.Lock] = {}
        self._in_flight: set[str] = set()

    @property
    def max_retries(self) -> int:
        return self._settings.max_retries

    async def current_user_id(self) -> str:
        return await self._user_id_provider()

    async def _resolve_user(self, user_id: Optional[str]) -> str:
        return user_id or await self.current_user_id()

    def _default_fetch(self, entity_type: EntityType) -> FetchRemote:
        return self._remote.entities(entity_type).list

    def _drain_lock(self, user_id: str) -> asyncio.Lock:
        return self._drain_locks.setdefault(user_id, asyncio.Lock())

    # =========================================================================
    # GUARDED STORE ACCESS
    # =========================================================================

    async def _read_snapshot(
        self,
        entity_type: EntityType,
        user_id: str,
    ) -> Optional[VersionedSnapshot]:
        try:
            return await self._store.get(entity_type, user_id)
        except StorageError as e:
            logger.warning(
                "local_read_failed",
                entity_type=entity_type.value,
                user_id=user_id,
                error=str(e),
            )
            return None

    async def _read_metadata(self, user_id: str) -> Optional[SyncMetadata]:
        try:
            return await self._store.get_sync_metadata(user_id)
        except StorageError as e:
            logger.warning("local_read_failed", key="sync_metadata", error=str(e))
            return None

    async def _read_queue(self, user_id: str) -> list[SyncQueueItem]:
        try:
            return await self.queue.items(user_id)
        except StorageError as e:
            logger.warning("local_read_failed", key="sync_queue", error=str(e))
            return []

    async def _update_metadata(self, user_id: str, **changes: Any) -> None:
        metadata = await self._read_metadata(user_id) or SyncMetadata(user_id=user_id)
        metadata = metadata.model_copy(update=changes)
        try:
            await self._store.put_sync_metadata(metadata)
        except StorageError as e:
            logger.warning("local_write_failed", key="sync_metadata", error=str(e))
            await self._audit.log_local_write_failed("sync_metadata", str(e))

    async def _mark_synced(self, user_id: str) -> None:
        now = self._clock()
        queue = await self._read_queue(user_id)
        await self._update_metadata(
            user_id,
            last_sync_attempt=now,
            last_successful_sync=now,
            pending_changes=bool(queue),
        )

    # =========================================================================
    # READS
    # =========================================================================

    async def get_data(
        self,
        entity_type: EntityType,
        fetch_remote: Optional[FetchRemote] = None,
        user_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Return the user's collection, from cache when possible.

        Raises:
            EntityLoadError: fetch failed and nothing is cached
        """
        user_id = await self._resolve_user(user_id)
        fetch_remote = fetch_remote or self._default_fetch(entity_type)
        snapshot = await self._read_snapshot(entity_type, user_id)
        metadata = await self._read_metadata(user_id)

        if snapshot is not None and metadata is not None and metadata.pending_changes:
            await self.process_sync_queue(user_id)
            if await self._read_queue(user_id):
                await self._audit.log_cache_hit(entity_type.value, user_id, snapshot.version)
                return snapshot.data
            reason = "pending changes confirmed"
        elif snapshot is not None:
            freshness = self._policy.evaluate(snapshot, metadata, self._clock())
            if freshness is not Freshness.EXPIRED:
                if freshness is Freshness.REFRESH_IN_BACKGROUND:
                    self._schedule_refresh(entity_type, user_id, fetch_remote)
                await self._audit.log_cache_hit(entity_type.value, user_id, snapshot.version)
                return snapshot.data
            reason = "snapshot expired"
        else:
            reason = "no snapshot"

        await self._audit.log_cache_miss(entity_type.value, user_id, reason)
        await self._update_metadata(user_id, last_sync_attempt=self._clock())
        try:
            data = await fetch_remote()
        except Exception as e:
            if snapshot is not None:
                logger.warning(
                    "stale_cache_served",
                    entity_type=entity_type.value,
                    user_id=user_id,
                    error=str(e),
                )
                await self._audit.log_stale_cache_served(entity_type.value, user_id, str(e))
                return snapshot.data
            await self._audit.log_entity_load_failed(entity_type.value, user_id, str(e))
            raise EntityLoadError(entity_type) from e

        await self.store_data(entity_type, user_id, data, from_sync=True)
        await self._mark_synced(user_id)
        return list(data)

    def _schedule_refresh(
        self,
        entity_type: EntityType,
        user_id: str,
        fetch_remote: FetchRemote,
    ) -> None:
        if not self._settings.background_refresh:
            return
        key = (entity_type, user_id)
        if key in self._refreshing:
            return
        self._refreshing.add(key)
        task = asyncio.create_task(self._refresh(entity_type, user_id, fetch_remote))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _refresh(
        self,
        entity_type: EntityType,
        user_id: str,
        fetch_remote: FetchRemote,
    ) -> None:
        try:
            data = await fetch_remote()
            metadata = await self._read_metadata(user_id)
            if metadata is not None and metadata.pending_changes:
                # A local edit landed while the fetch was in flight
                logger.info(
                    "background_refresh_dropped",
                    entity_type=entity_type.value,
                    user_id=user_id,
                )
                return
            await self.store_data(entity_type, user_id, data, from_sync=True)
            await self._mark_synced(user_id)
        except Exception as e:
            logger.warning(
                "background_refresh_failed",
                entity_type=entity_type.value,
                user_id=user_id,
                error=str(e),
            )
            await self._audit.log_error(
                "background_refresh_failed",
                str(e),
                details={"entity_type": entity_type.value, "user_id": user_id},
            )
        finally:
            self._refreshing.discard((entity_type, user_id))

    async def wait_for_background(self) -> None:
        """Wait until scheduled background refreshes have finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # =========================================================================
    # WRITES
    # =========================================================================

    async def store_data(
        self,
        entity_type: EntityType,
        user_id: str,
        data: Iterable[dict[str, Any]],
        from_sync: bool = False,
    ) -> VersionedSnapshot:
        """
        Replace the cached collection with a new, higher-versioned snapshot.

        A local (non-sync) write flags the user as having pending changes.
        Store failures are logged, never raised.
        """
        previous = await self._read_snapshot(entity_type, user_id)
        snapshot = VersionedSnapshot(
            data=list(data),
            version=(previous.version if previous else 0) + 1,
            last_modified=self._clock(),
            user_id=user_id,
        )
        try:
            await self._store.put(entity_type, user_id, snapshot)
        except StorageError as e:
            logger.warning(
                "local_write_failed",
                entity_type=entity_type.value,
                user_id=user_id,
                error=str(e),
            )
            await self._audit.log_local_write_failed(
                f"{entity_type.value}/{user_id}", str(e)
            )
            return snapshot

        await self._audit.log_snapshot_stored(
            entity_type.value, user_id, snapshot.version, from_sync
        )
        if not from_sync:
            await self._update_metadata(user_id, pending_changes=True)
        return snapshot

    async def apply_local_change(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: SyncOperation,
        payload: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        """
        Apply an edit locally, queue it, and try to push it right away.

        Returns the collection as it stands after the push attempt.
        """
        user_id = await self._resolve_user(user_id)
        payload = dict(payload or {})
        if operation is not SyncOperation.DELETE:
            payload.setdefault("id", entity_id)

        snapshot = await self._read_snapshot(entity_type, user_id)
        if snapshot is None:
            current = await self.get_data(entity_type, user_id=user_id)
        else:
            current = snapshot.data

        await self.store_data(
            entity_type,
            user_id,
            _apply_operation(current, operation, entity_id, payload),
        )

        item = SyncQueueItem(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            payload=payload,
            timestamp=self._clock(),
        )
        try:
            await self.queue.enqueue(user_id, item)
        except StorageError as e:
            logger.warning("local_write_failed", key="sync_queue", error=str(e))
            await self._audit.log_local_write_failed("sync_queue", str(e))
            # Without a queue the push below is the only attempt
        await self._push(user_id, item, correlation_id)

        snapshot = await self._read_snapshot(entity_type, user_id)
        if snapshot is None:
            return _apply_operation(current, operation, entity_id, payload)
        return snapshot.data

    async def create(
        self,
        entity_type: EntityType,
        payload: dict[str, Any],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        return await self.apply_local_change(
            entity_type, payload["id"], SyncOperation.CREATE, payload,
            user_id=user_id, correlation_id=correlation_id,
        )

    async def update(
        self,
        entity_type: EntityType,
        payload: dict[str, Any],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        return await self.apply_local_change(
            entity_type, payload["id"], SyncOperation.UPDATE, payload,
            user_id=user_id, correlation_id=correlation_id,
        )

    async def delete(
        self,
        entity_type: EntityType,
        entity_id: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[dict[str, Any]]:
        return await self.apply_local_change(
            entity_type, entity_id, SyncOperation.DELETE,
            user_id=user_id, correlation_id=correlation_id,
        )

    async def _push(
        self,
        user_id: str,
        item: SyncQueueItem,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        One push attempt for a queued item; True when the server accepted it.

        An item already being pushed is skipped and counts as not accepted.
        """
        if item.id in self._in_flight:
            return False
        # Held until the item has left the queue
        self._in_flight.add(item.id)
        try:
            if not await self._send(user_id, item, correlation_id):
                return False
        finally:
            self._in_flight.discard(item.id)
        await self._audit.log_push_succeeded(item, correlation_id)

        if not await self._read_queue(user_id):
            await self._update_metadata(user_id, pending_changes=False)
        return True

    async def _send(
        self,
        user_id: str,
        item: SyncQueueItem,
        correlation_id: Optional[UUID],
    ) -> bool:
        endpoint = self._remote.entities(item.entity_type)
        try:
            if item.operation is SyncOperation.CREATE:
                returned = await endpoint.create(item.payload)
            elif item.operation is SyncOperation.UPDATE:
                returned = await endpoint.update(item.entity_id, item.payload)
            else:
                await endpoint.delete(item.entity_id)
                returned = None
        except RemoteApiError as e:
            await self._record_push_failure(user_id, item, e, correlation_id)
            return False

        try:
            await self.queue.remove(user_id, item.id)
            if item.operation is SyncOperation.CREATE and returned:
                await self._adopt_server_id(user_id, item, returned)
        except StorageError as e:
            logger.warning("local_write_failed", key="sync_queue", error=str(e))
        return True

    async def _record_push_failure(
        self,
        user_id: str,
        item: SyncQueueItem,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> None:
        try:
            updated = await self.queue.record_failure(user_id, item.id)
        except StorageError as e:
            logger.warning("local_write_failed", key="sync_queue", error=str(e))
            updated = None
        updated = updated or item.model_copy(update={"retry_count": item.retry_count + 1})

        logger.warning(
            "push_failed",
            entity_type=item.entity_type.value,
            entity_id=item.entity_id,
            retry_count=updated.retry_count,
            error=str(error),
        )
        await self._audit.log_push_failed(updated, str(error), correlation_id)
        if updated.is_exhausted(self.max_retries):
            await self._audit.log_retries_exhausted(updated)

    async def _adopt_server_id(
        self,
        user_id: str,
        item: SyncQueueItem,
        returned: dict[str, Any],
    ) -> None:
        """
        Re-key a created record when the server assigned a new id.

        Local fields win over the server's copy: later edits to the
        record may still be queued behind the create.
        """
        server_id = returned.get("id")
        if not server_id or server_id == item.entity_id:
            return
        snapshot = await self._read_snapshot(item.entity_type, user_id)
        if snapshot is not None:
            data = [
                {**returned, **record, "id": server_id}
                if record.get("id") == item.entity_id else record
                for record in snapshot.data
            ]
            await self.store_data(item.entity_type, user_id, data, from_sync=True)
        await self.queue.rename_entity(user_id, item.entity_id, server_id)

    async def process_sync_queue(
        self,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Retry every queued item that still has attempts left, in order.

        One drain runs per user at a time. A call that finds a drain in
        progress waits for it and returns 0 instead of pushing again.

        Returns the number of items the server accepted.
        """
        user_id = await self._resolve_user(user_id)
        lock = self._drain_lock(user_id)
        if lock.locked():
            async with lock:
                return 0

        async with lock:
            pushed = 0
            for item in await self._read_queue(user_id):
                if item.is_exhausted(self.max_retries):
                    continue
                # Earlier pushes may have renamed this item's entity
                current = await self.queue.get(user_id, item.id)
                if current is None or current.is_exhausted(self.max_retries):
                    continue
                if await self._push(user_id, current, correlation_id):
                    pushed += 1
            return pushed

    # =========================================================================
    # VERSION-GATED SYNC
    # =========================================================================

    async def sync_data(self, user_id: Optional[str] = None) -> SyncReport:
        """
        Pull the entity types the server has newer versions of.

        Types are fetched concurrently and independently; only the ones
        that succeed advance their local version. Types with queued
        changes are skipped unless a conflict strategy is set.

        Raises:
            RemoteApiError: the version vector itself could not be fetched
        """
        user_id = await self._resolve_user(user_id)
        correlation_id = create_correlation_id()

        try:
            local_versions = await self._store.get_versions(user_id)
        except StorageError as e:
            logger.warning("local_read_failed", key="versions", error=str(e))
            local_versions = None
        full_sync = local_versions is None

        await self._audit.log(AuditEventBuilder.sync_started(user_id, full_sync, correlation_id))
        await self._update_metadata(user_id, last_sync_attempt=self._clock())
        server_versions = await self._remote.get_user_versions()

        if await self._read_queue(user_id):
            await self.process_sync_queue(user_id, correlation_id)
        pending_types = {item.entity_type for item in await self._read_queue(user_id)}

        baseline = local_versions or UserVersions()
        report = SyncReport(correlation_id=correlation_id, full_sync=full_sync)
        to_sync: list[EntityType] = []
        held_back = False
        for entity_type in VERSIONED_ENTITY_TYPES:
            newer = server_versions.for_entity(entity_type) > baseline.for_entity(entity_type)
            if not (full_sync or newer):
                report.skipped.append(entity_type)
            elif entity_type in pending_types and self._conflict_strategy is None:
                report.skipped.append(entity_type)
                held_back = True
            else:
                to_sync.append(entity_type)

        results = await asyncio.gather(
            *(self._sync_entity_type(user_id, t, correlation_id) for t in to_sync),
            return_exceptions=True,
        )

        advanced = baseline.model_dump(exclude={"last_sync"})
        for entity_type, result in zip(to_sync, results):
            if isinstance(result, BaseException):
                report.failed[entity_type] = str(result)
                await self._audit.log(AuditEventBuilder.entity_type_sync_failed(
                    entity_type.value, str(result), correlation_id,
                ))
                continue
            report.synced.append(entity_type)
            advanced[entity_type.version_field] = server_versions.for_entity(entity_type)
            await self._audit.log(AuditEventBuilder.entity_type_synced(
                entity_type.value,
                server_versions.for_entity(entity_type),
                result,
                correlation_id,
            ))

        if not report.failed and not held_back:
            advanced["global_version"] = server_versions.global_version
        try:
            await self._store.put_versions(
                user_id,
                LocalVersions(**advanced, last_sync=self._clock()),
            )
        except StorageError as e:
            logger.warning("local_write_failed", key="versions", error=str(e))
            await self._audit.log_local_write_failed("versions", str(e))

        if report.synced and not report.failed:
            await self._mark_synced(user_id)

        report.completed_at = self._clock()
        await self._audit.log(AuditEventBuilder.sync_completed(
            user_id,
            [t.value for t in report.synced],
            [t.value for t in report.failed],
            correlation_id,
        ))
        return report

    async def _sync_entity_type(
        self,
        user_id: str,
        entity_type: EntityType,
        correlation_id: UUID,
    ) -> int:
        data = await self._remote.entities(entity_type).list()
        if self._conflict_strategy is None:
            await self.store_data(entity_type, user_id, data, from_sync=True)
            return len(data)

        # No push may start while queued edits are being reconciled
        async with self._drain_lock(user_id):
            data = await self._merge_pending(user_id, entity_type, data, correlation_id)
            await self.store_data(entity_type, user_id, data, from_sync=True)
        return len(data)

    async def _merge_pending(
        self,
        user_id: str,
        entity_type: EntityType,
        remote_data: list[dict[str, Any]],
        correlation_id: UUID,
    ) -> list[dict[str, Any]]:
        """
        Combine a fetched collection with the user's queued edits.

        Each fetched record that has queued changes goes through
        resolve_conflict, with the newest queued change as the local
        modification time. A remote win drops those changes from the
        queue; a local win keeps the local copy (or its absence, for a
        delete) and leaves the changes queued. Records created locally
        that the server has not seen yet are kept.
        """
        queued: dict[str, list[SyncQueueItem]] = {}
        for item in await self._read_queue(user_id):
            if item.entity_type is entity_type:
                queued.setdefault(item.entity_id, []).append(item)
        if not queued:
            return list(remote_data)

        snapshot = await self._read_snapshot(entity_type, user_id)
        local_records = {
            record.get("id"): record for record in (snapshot.data if snapshot else [])
        }

        merged: list[dict[str, Any]] = []
        seen: set[str] = set()
        for remote in remote_data:
            entity_id = remote.get("id")
            seen.add(entity_id)
            items = queued.get(entity_id)
            if not items:
                merged.append(remote)
                continue

            local = local_records.get(entity_id)
            local_modified = max(item.timestamp for item in items)
            winner = resolve_conflict(
                local or {}, remote, local_modified, self._conflict_strategy
            )
            if winner is remote:
                merged.append(remote)
                await self._drop_queued(user_id, entity_type, entity_id)
            elif local is not None:
                merged.append(local)

            side = "remote" if winner is remote else "local"
            logger.info(
                "conflict_resolved",
                entity_type=entity_type.value,
                entity_id=entity_id,
                winner=side,
                strategy=self._conflict_strategy.value,
            )
            await self._audit.log(AuditEventBuilder.conflict_resolved(
                entity_type.value,
                entity_id,
                side,
                self._conflict_strategy.value,
                correlation_id,
            ))

        for entity_id in queued:
            if entity_id not in seen and entity_id in local_records:
                merged.append(local_records[entity_id])

        if not await self._read_queue(user_id):
            await self._update_metadata(user_id, pending_changes=False)
        return merged

    async def _drop_queued(self, user_id: str, entity_type: EntityType, entity_id: str) -> None:
        try:
            dropped = await self.queue.remove_entity(user_id, entity_type, entity_id)
        except StorageError as e:
            logger.warning("local_write_failed", key="sync_queue", error=str(e))
            return
        for item in dropped:
            await self._audit.log_queue_item_discarded(item)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def pending_changes_count(self, user_id: Optional[str] = None) -> int:
        user_id = await self._resolve_user(user_id)
        return len(await self._read_queue(user_id))

    async def exhausted_items(self, user_id: Optional[str] = None) -> list[SyncQueueItem]:
        """Queued changes that are no longer retried automatically."""
        user_id = await self._resolve_user(user_id)
        return await self.queue.exhausted(user_id)

    async def discard_queue_item(self, item_id: str, user_id: Optional[str] = None) -> bool:
        """
        Drop a queued change without pushing it.

        The local snapshot keeps the edit until the next fetch replaces it.
        """
        user_id = await self._resolve_user(user_id)
        item = await self.queue.get(user_id, item_id)
        if item is None:
            return False
        await self.queue.remove(user_id, item_id)
        await self._audit.log_queue_item_discarded(item)
        if not await self._read_queue(user_id):
            await self._update_metadata(user_id, pending_changes=False)
        return True

    async def clear_user_data(self, user_id: Optional[str] = None) -> int:
        """Remove every cached document for the user; returns how many."""
        user_id = await self._resolve_user(user_id)
        removed = await self._store.clear_user(user_id)
        logger.info("user_cache_cleared", user_id=user_id, removed=removed)
        return removed
