"""
Shared fixtures.

No test talks to a real server: the remote API is an in-memory fake
whose endpoints can be told to fail.
"""

import asyncio
import copy
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from budget_planner.audit import AuditLogger
from budget_planner.config import SyncSettings
from budget_planner.models.entities import EntityType, User, UserVersions
from budget_planner.services.remote import (
    EntityEndpoint,
    RemoteApi,
    RemoteUnavailableError,
)
from budget_planner.services.storage import MemoryAuditStorage, MemoryEntityStore
from budget_planner.sync import SyncCoordinator, static_user


USER_ID = "user-1"
TODAY = date(2025, 12, 15)


class FakeEndpoint(EntityEndpoint):
    """Collection held in a list; records every call."""

    def __init__(self):
        self.records: list[dict[str, Any]] = []
        self.calls: list[tuple] = []
        self.fail_reads = False
        self.fail_writes = False
        self.assign_ids = False
        self.yield_on_write = False
        self._next_id = 0

    def _maybe_fail(self, write: bool) -> None:
        if (self.fail_writes if write else self.fail_reads):
            raise RemoteUnavailableError("connection refused")

    async def _begin_write(self, *call) -> None:
        self.calls.append(call)
        if self.yield_on_write:
            # Let other tasks run while the request is "on the network"
            await asyncio.sleep(0)
        self._maybe_fail(write=True)

    async def list(self) -> list[dict[str, Any]]:
        self.calls.append(("list",))
        self._maybe_fail(write=False)
        return copy.deepcopy(self.records)

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        await self._begin_write("create", payload.get("id"))
        record = copy.deepcopy(payload)
        if self.assign_ids:
            self._next_id += 1
            record["id"] = f"srv-{self._next_id}"
        self.records.append(record)
        return copy.deepcopy(record)

    async def update(self, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        await self._begin_write("update", entity_id)
        record = copy.deepcopy(payload)
        self.records = [r for r in self.records if r.get("id") != entity_id] + [record]
        return copy.deepcopy(record)

    async def delete(self, entity_id: str) -> None:
        await self._begin_write("delete", entity_id)
        self.records = [r for r in self.records if r.get("id") != entity_id]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class FakeRemoteApi(RemoteApi):
    def __init__(self):
        self.endpoints = {entity_type: FakeEndpoint() for entity_type in EntityType}
        self.versions = UserVersions()
        self.user: Optional[User] = None
        self.fail_versions = False

    def entities(self, entity_type: EntityType) -> FakeEndpoint:
        return self.endpoints[entity_type]

    async def get_user_versions(self) -> UserVersions:
        if self.fail_versions:
            raise RemoteUnavailableError("connection refused")
        return self.versions

    async def get_current_user(self) -> Optional[User]:
        return self.user


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 12, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def store():
    return MemoryEntityStore()


@pytest.fixture
def remote():
    return FakeRemoteApi()


@pytest.fixture
def audit_storage():
    return MemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sync_settings():
    return SyncSettings(background_refresh=False)


@pytest.fixture
def coordinator(store, remote, audit_logger, sync_settings, clock):
    return SyncCoordinator(
        store=store,
        remote=remote,
        user_id_provider=static_user(USER_ID),
        audit_logger=audit_logger,
        settings=sync_settings,
        clock=clock,
    )
