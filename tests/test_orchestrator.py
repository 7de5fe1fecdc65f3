"""Tests for component wiring and the dashboard flow."""

import pytest

from budget_planner.models.entities import Asset, Debt, EntityType, User
from budget_planner.orchestrator import DashboardFlow, create_app_components
from budget_planner.services.storage import JsonFileEntityStore, MemoryEntityStore
from budget_planner.sync import static_user

from conftest import TODAY, USER_ID, FakeRemoteApi


@pytest.fixture
def populated_remote(remote):
    remote.user = User(id=USER_ID, display_name="Sam", birthday_string="1990-06-15T00:00:00Z")
    remote.endpoints[EntityType.ASSETS].records = [
        Asset(id="a1", name="House", current_value=100000).to_wire(),
        Asset(id="a2", name="Savings", current_value="2500").to_wire(),
    ]
    remote.endpoints[EntityType.DEBTS].records = [
        Debt(id="d1", name="Mortgage", current_balance=50000).to_wire(),
    ]
    return remote


@pytest.mark.asyncio
class TestDashboardFlow:
    """Tests for the home page figures."""

    async def test_summary(self, coordinator, populated_remote):
        """Test totals, net worth and age from fetched data."""
        summary = await DashboardFlow(coordinator, populated_remote, lambda: TODAY).load()

        assert summary.user.display_name == "Sam"
        assert summary.assets_total == 102500
        assert summary.debts_total == 50000
        assert summary.net_worth == 52500
        assert summary.age == 35

    async def test_served_from_cache(self, coordinator, populated_remote):
        """Test that a second load does not refetch."""
        flow = DashboardFlow(coordinator, populated_remote, lambda: TODAY)
        await flow.load()
        populated_remote.endpoints[EntityType.ASSETS].records = []

        summary = await flow.load()

        assert summary.assets_total == 102500
        assert populated_remote.endpoints[EntityType.ASSETS].count("list") == 1

    async def test_invalid_birthday(self, coordinator, populated_remote):
        """Test that an unparseable birthday only drops the age."""
        populated_remote.user = User(id=USER_ID, birthday_string="someday")
        summary = await DashboardFlow(coordinator, populated_remote, lambda: TODAY).load()
        assert summary.age is None

    async def test_no_profile(self, coordinator, remote):
        """Test an empty balance sheet without a profile."""
        summary = await DashboardFlow(coordinator, remote, lambda: TODAY).load()
        assert summary.user is None
        assert summary.net_worth == 0


@pytest.mark.asyncio
class TestCreateAppComponents:
    """Tests for the component factory."""

    async def test_wiring(self, audit_storage):
        """Test that every component shares one coordinator and store."""
        store = MemoryEntityStore()
        remote = FakeRemoteApi()
        components = create_app_components(
            static_user(USER_ID), remote=remote, store=store, audit_storage=audit_storage,
        )

        assert components.store is store
        assert components.remote is remote

        await components.plans.create_plan("Main")
        assert len(remote.endpoints[EntityType.PLANS].records) == 1
        assert audit_storage.events

        await components.aclose()

    async def test_file_store_from_settings(self, monkeypatch, tmp_path):
        """Test that the configured cache directory is used by default."""
        monkeypatch.setenv("PLANNER_CACHE_BACKEND", "file")
        monkeypatch.setenv("PLANNER_CACHE_DATA_DIR", str(tmp_path))

        components = create_app_components(static_user(USER_ID), remote=FakeRemoteApi())

        assert isinstance(components.store, JsonFileEntityStore)
        await components.dashboard.load()
        assert (tmp_path / "audit.jsonl").exists()
        await components.aclose()
