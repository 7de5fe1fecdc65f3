"""Tests for plan mutations on top of the sync coordinator."""

import pytest

from budget_planner.engine import build_months
from budget_planner.models.audit import AuditEventType
from budget_planner.models.entities import (
    Asset,
    Budget,
    Debt,
    EntityType,
    ExpenseItem,
    ExpenseKind,
    LineItem,
    Plan,
    TargetRef,
    TransactionKind,
)
from budget_planner.plans import (
    InvalidMonthIndexError,
    PlanLoadError,
    PlanMutationService,
    PlanNotFoundError,
    TransactionNotFoundError,
)

from conftest import TODAY, USER_ID


PLANS = EntityType.PLANS


def remote_plans(remote) -> list[dict]:
    return remote.endpoints[PLANS].records


def event_types(audit_storage) -> list[AuditEventType]:
    return [event.event_type for event in audit_storage.events]


@pytest.fixture
def service(coordinator, audit_logger):
    service = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)
    service.set_reference_data(
        budgets=[Budget(id="b1", income=[LineItem(name="Pay", amount=1000)])],
        assets=[Asset(id="a1", current_value=1000)],
        debts=[Debt(id="d1", current_balance=250)],
    )
    return service


@pytest.mark.asyncio
class TestCreatePlan:
    """Tests for plan creation."""

    async def test_first_plan(self, service, remote):
        """Test a first plan: active, 24 months from next month, flat net worth."""
        plan = await service.create_plan("X", "desc")

        assert plan.is_active
        assert plan.user_id == USER_ID
        assert len(plan.months) == 24
        assert plan.months[0].month == "2026-01"
        assert plan.months[23].month == "2027-12"
        assert all(m.net_worth == 750 for m in plan.months)
        assert all(m.transactions == [] for m in plan.months)
        assert service.selected_plan is plan

        stored = remote_plans(remote)
        assert len(stored) == 1
        assert stored[0]["isActive"] is True
        assert stored[0]["description"] == "desc"

    async def test_second_plan_inactive(self, service):
        """Test that later plans start inactive but are selected."""
        first = await service.create_plan("A")
        second = await service.create_plan("B")

        assert first.is_active and not second.is_active
        assert service.selected_plan_id == second.id

    async def test_autofill_budget(self, service):
        """Test that an autofill budget lands in every month and is projected."""
        plan = await service.create_plan("A", autofill_budget_id="b1")
        assert all(m.budget_id == "b1" for m in plan.months)
        assert plan.months[0].net_worth == 1750
        assert plan.months[1].net_worth == 2750

    async def test_server_assigned_id(self, service, remote):
        """Test that the plan adopts an id chosen by the server."""
        remote.endpoints[PLANS].assign_ids = True
        plan = await service.create_plan("A")
        assert plan.id == "srv-1"
        assert service.selected_plan_id == "srv-1"

    async def test_offline_create_is_kept_locally(self, service, remote, coordinator):
        """Test that a failed push still leaves a usable plan."""
        remote.endpoints[PLANS].fail_writes = True
        plan = await service.create_plan("A")

        assert service.get_plan(plan.id) is plan
        assert await coordinator.pending_changes_count() == 1


@pytest.mark.asyncio
class TestPlanOperations:
    """Tests for selecting, renaming, deleting and budgeting plans."""

    async def test_select_plan_switches_active(self, service, remote):
        """Test that exactly one plan stays active."""
        first = await service.create_plan("A")
        second = await service.create_plan("B")

        await service.select_plan(second.id)

        assert not first.is_active and second.is_active
        active = {r["id"]: r["isActive"] for r in remote_plans(remote)}
        assert active == {first.id: False, second.id: True}

    async def test_rename(self, service, remote):
        """Test that renames are persisted and blank names ignored."""
        plan = await service.create_plan("A")
        await service.rename_plan("  Retirement  ")
        assert remote_plans(remote)[0]["name"] == "Retirement"

        updates = remote.endpoints[PLANS].count("update")
        await service.rename_plan("   ")
        assert plan.name == "Retirement"
        assert remote.endpoints[PLANS].count("update") == updates

    async def test_delete_active_reactivates_first_remaining(self, service, remote, audit_storage):
        """Test that deleting the active plan hands activity to another plan."""
        first = await service.create_plan("A")
        second = await service.create_plan("B")
        await service.select_plan(first.id)

        reactivated = await service.delete_plan()

        assert reactivated is second
        assert second.is_active
        assert service.selected_plan_id == second.id
        assert [(r["id"], r["isActive"]) for r in remote_plans(remote)] == [(second.id, True)]
        assert AuditEventType.PLAN_DELETED in event_types(audit_storage)

    async def test_delete_inactive(self, service):
        """Test that deleting an inactive plan selects the active one."""
        first = await service.create_plan("A")
        await service.create_plan("B")

        assert await service.delete_plan() is None
        assert service.selected_plan_id == first.id
        assert service.selected_plan is first
        assert first.is_active

    async def test_delete_last_plan(self, service):
        """Test that deleting the only plan leaves nothing selected."""
        await service.create_plan("A")

        assert await service.delete_plan() is None
        assert service.plans == []
        assert service.selected_plan_id is None

    async def test_assign_budget_recomputes_from_month(self, service, remote):
        """Test that a budget affects its month and every later month."""
        plan = await service.create_plan("A")

        await service.assign_budget_to_month(3, "b1")

        assert [m.net_worth for m in plan.months[:4]] == [750, 750, 750, 1750]
        assert plan.months[23].net_worth == 1750
        assert remote_plans(remote)[0]["months"][3]["budgetId"] == "b1"

        await service.assign_budget_to_month(3, "")
        assert plan.months[3].budget_id is None
        assert plan.months[23].net_worth == 750

    async def test_invalid_month(self, service):
        """Test that month indexes outside the window are rejected."""
        await service.create_plan("A")
        with pytest.raises(InvalidMonthIndexError):
            await service.assign_budget_to_month(24, "b1")
        with pytest.raises(InvalidMonthIndexError):
            service.add_empty_transaction(-1)

    async def test_nothing_selected(self, service):
        """Test that operations on the selected plan need one."""
        with pytest.raises(PlanNotFoundError):
            await service.rename_plan("A")
        with pytest.raises(PlanNotFoundError):
            service.get_plan("missing")


@pytest.mark.asyncio
class TestTransactions:
    """Tests for the edit-then-save transaction lifecycle."""

    async def test_save_transaction(self, service, remote, audit_storage):
        """Test that a saved transaction gets a permanent id and moves net worth."""
        plan = await service.create_plan("A")
        draft = service.add_empty_transaction(0)
        assert draft.is_temporary and draft.is_editing

        service.update_transaction_field(0, draft.id, "target", "asset-a1")
        service.update_transaction_field(0, draft.id, "amount", "300")
        saved = await service.save_transaction(0, draft.id)

        assert not saved.is_temporary
        assert not saved.is_editing
        assert plan.months[0].net_worth == 1050
        assert plan.months[23].net_worth == 1050
        stored = remote_plans(remote)[0]["months"][0]["transactions"]
        assert [tx["id"] for tx in stored] == [saved.id]
        assert AuditEventType.TRANSACTION_SAVED in event_types(audit_storage)

    async def test_debt_transaction_via_target_ref(self, service):
        """Test that paying down a debt raises net worth."""
        plan = await service.create_plan("A")
        draft = service.add_empty_transaction(2)
        service.update_transaction_field(
            2, draft.id, "target", TargetRef(kind=TransactionKind.DEBT, id="d1")
        )
        service.update_transaction_field(2, draft.id, "amount", 100)
        await service.save_transaction(2, draft.id)

        assert plan.months[1].net_worth == 750
        assert plan.months[2].net_worth == 850

    async def test_unsaved_drafts_not_persisted(self, service, remote):
        """Test that other drafts stay local when one transaction is saved."""
        await service.create_plan("A")
        service.add_empty_transaction(1)
        draft = service.add_empty_transaction(0)
        service.update_transaction_field(0, draft.id, "target", "asset-a1")
        service.update_transaction_field(0, draft.id, "amount", 50)

        await service.save_transaction(0, draft.id)

        assert remote_plans(remote)[0]["months"][1]["transactions"] == []
        assert len(service.selected_plan.months[1].transactions) == 1

    @pytest.mark.parametrize("target, amount", [("", 100), ("asset-a1", 0)])
    async def test_incomplete_transaction_discarded(self, service, audit_storage, target, amount):
        """Test that saving without a target or amount removes the draft."""
        plan = await service.create_plan("A")
        draft = service.add_empty_transaction(0)
        service.update_transaction_field(0, draft.id, "target", target)
        service.update_transaction_field(0, draft.id, "amount", amount)

        assert await service.save_transaction(0, draft.id) is None
        assert plan.months[0].transactions == []
        assert AuditEventType.TRANSACTION_DISCARDED in event_types(audit_storage)

    async def test_remove_transaction(self, service, remote):
        """Test that removing a saved transaction reverts the projection."""
        plan = await service.create_plan("A")
        draft = service.add_empty_transaction(0)
        service.update_transaction_field(0, draft.id, "target", "asset-a1")
        service.update_transaction_field(0, draft.id, "amount", 300)
        saved = await service.save_transaction(0, draft.id)

        await service.remove_transaction(0, saved.id)

        assert plan.months[0].net_worth == 750
        assert remote_plans(remote)[0]["months"][0]["transactions"] == []

    async def test_unknown_field_and_transaction(self, service):
        """Test rejection of unknown fields and transaction ids."""
        await service.create_plan("A")
        draft = service.add_empty_transaction(0)
        with pytest.raises(ValueError):
            service.update_transaction_field(0, draft.id, "colour", "red")
        with pytest.raises(TransactionNotFoundError):
            await service.save_transaction(0, "missing")


@pytest.mark.asyncio
class TestLoad:
    """Tests for loading and repairing plans."""

    @pytest.fixture
    def loaded_remote(self, remote):
        remote.endpoints[EntityType.ASSETS].records = [
            Asset(id="a1", current_value=1000).to_wire()
        ]
        remote.endpoints[EntityType.DEBTS].records = [
            Debt(id="d1", current_balance=250).to_wire()
        ]
        return remote

    async def test_stale_window_shifted_and_persisted(
        self, coordinator, audit_logger, loaded_remote, audit_storage
    ):
        """Test that a plan starting last month is shifted forward on load."""
        months = build_months("2025-12", 24, net_worth=0.0)
        months[1].budget_id = "b-kept"
        loaded_remote.endpoints[PLANS].records = [
            Plan(id="p1", name="Main", is_active=True, months=months).to_wire()
        ]
        service = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)

        plans = await service.load()

        assert plans[0].months[0].month == "2026-01"
        assert plans[0].months[0].budget_id == "b-kept"
        assert plans[0].months[23].net_worth == 750
        assert remote_plans(loaded_remote)[0]["months"][0]["month"] == "2026-01"
        assert AuditEventType.PLAN_WINDOW_ALIGNED in event_types(audit_storage)
        assert service.selected_plan_id == "p1"

        assert await service.refresh_window() == []

    async def test_selects_active_plan(self, coordinator, audit_logger, loaded_remote):
        """Test that the active plan is selected after loading."""
        loaded_remote.endpoints[PLANS].records = [
            Plan(id="p1", name="A", months=build_months("2026-01", 24, 0.0)).to_wire(),
            Plan(id="p2", name="B", is_active=True,
                 months=build_months("2026-01", 24, 0.0)).to_wire(),
        ]
        service = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)

        await service.load()

        assert service.selected_plan_id == "p2"
        assert loaded_remote.endpoints[PLANS].count("update") == 0

    async def test_dangling_links_pruned_and_persisted(
        self, coordinator, audit_logger, loaded_remote, audit_storage
    ):
        """Test that expenses pointing at deleted assets are removed everywhere."""
        loaded_remote.endpoints[EntityType.BUDGETS].records = [
            Budget(
                id="b1",
                expenses=[
                    ExpenseItem(name="Rent", amount=900),
                    ExpenseItem(name="Old fund", amount=50,
                                kind=ExpenseKind.ASSET_DEPOSIT, linked_asset_id="gone"),
                ],
            ).to_wire()
        ]
        service = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)

        await service.load()

        assert [e.name for e in service.budgets[0].expenses] == ["Rent"]
        stored = loaded_remote.endpoints[EntityType.BUDGETS].records[0]
        assert [e["name"] for e in stored["expenses"]] == ["Rent"]
        assert AuditEventType.BUDGET_LINK_PRUNED in event_types(audit_storage)

    async def test_queued_plan_pushed_once_on_load(self, coordinator, audit_logger, loaded_remote):
        """Test that a plan created offline reaches the server once when loading."""
        for entity_type in (PLANS, EntityType.BUDGETS, EntityType.ASSETS, EntityType.DEBTS):
            await coordinator.get_data(entity_type)
        endpoint = loaded_remote.endpoints[PLANS]
        endpoint.fail_writes = True
        offline = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)
        plan = await offline.create_plan("Offline")
        endpoint.fail_writes = False
        endpoint.yield_on_write = True

        service = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)
        await service.load()

        assert [r["id"] for r in endpoint.records] == [plan.id]
        assert [p.id for p in service.plans] == [plan.id]
        assert await coordinator.pending_changes_count() == 0

    async def test_unreachable_server(self, coordinator, audit_logger, remote):
        """Test that a failed load with nothing cached raises PlanLoadError."""
        remote.endpoints[PLANS].fail_reads = True
        service = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)

        with pytest.raises(PlanLoadError, match="Failed to load plans data"):
            await service.load()

    async def test_malformed_plan(self, coordinator, audit_logger, remote):
        """Test that undecodable plan data raises PlanLoadError."""
        remote.endpoints[PLANS].records = [{"id": "p1", "months": "nope"}]
        service = PlanMutationService(coordinator, audit_logger, today=lambda: TODAY)

        with pytest.raises(PlanLoadError):
            await service.load()
