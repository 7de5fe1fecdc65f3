"""Per-user queue of optimistic changes awaiting a successful push."""

from typing import Optional

from budget_planner.models.entities import EntityType
from budget_planner.models.sync import SyncQueueItem
from budget_planner.services.storage import EntityCacheStore


class SyncQueue:
    """
    Thin read-modify-write wrapper over the store's queue document.

    Items are kept in enqueue order; pushes must replay in that order
    so a create always reaches the server before its updates.
    """

    def __init__(self, store: EntityCacheStore, max_retries: int = 3):
        self._store = store
        self.max_retries = max_retries

    async def items(self, user_id: str) -> list[SyncQueueItem]:
        return await self._store.get_queue(user_id)

    async def enqueue(self, user_id: str, item: SyncQueueItem) -> None:
        items = await self._store.get_queue(user_id)
        items.append(item)
        await self._store.put_queue(user_id, items)

    async def get(self, user_id: str, item_id: str) -> Optional[SyncQueueItem]:
        for item in await self._store.get_queue(user_id):
            if item.id == item_id:
                return item
        return None

    async def remove(self, user_id: str, item_id: str) -> bool:
        items = await self._store.get_queue(user_id)
        remaining = [item for item in items if item.id != item_id]
        if len(remaining) == len(items):
            return False
        await self._store.put_queue(user_id, remaining)
        return True

    async def record_failure(self, user_id: str, item_id: str) -> Optional[SyncQueueItem]:
        """Bump an item's retry count; returns the updated item."""
        items = await self._store.get_queue(user_id)
        updated = None
        for index, item in enumerate(items):
            if item.id == item_id:
                updated = item.model_copy(update={"retry_count": item.retry_count + 1})
                items[index] = updated
                break
        if updated is not None:
            await self._store.put_queue(user_id, items)
        return updated

    async def rename_entity(self, user_id: str, old_id: str, new_id: str) -> None:
        """Point queued changes at the id the server assigned on create."""
        items = await self._store.get_queue(user_id)
        changed = False
        for index, item in enumerate(items):
            if item.entity_id == old_id:
                payload = dict(item.payload)
                if payload.get("id") == old_id:
                    payload["id"] = new_id
                items[index] = item.model_copy(
                    update={"entity_id": new_id, "payload": payload}
                )
                changed = True
        if changed:
            await self._store.put_queue(user_id, items)

    async def remove_entity(
        self,
        user_id: str,
        entity_type: EntityType,
        entity_id: str,
    ) -> list[SyncQueueItem]:
        """Drop every queued change to one entity; returns what was dropped."""
        items = await self._store.get_queue(user_id)
        removed = [
            item for item in items
            if item.entity_type is entity_type and item.entity_id == entity_id
        ]
        if removed:
            dropped = {item.id for item in removed}
            await self._store.put_queue(
                user_id, [item for item in items if item.id not in dropped]
            )
        return removed

    async def exhausted(self, user_id: str) -> list[SyncQueueItem]:
        return [
            item for item in await self.items(user_id)
            if item.is_exhausted(self.max_retries)
        ]
