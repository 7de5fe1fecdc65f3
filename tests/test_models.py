"""
Tests for Budget Planner models

Test strategy:
1. Wire format: camelCase in, camelCase out
2. Normalization of numbers that arrive as text
3. Audit event construction
"""

import pytest
from uuid import uuid4

from budget_planner.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from budget_planner.models.entities import (
    Asset,
    Budget,
    Debt,
    EntityType,
    ExpenseItem,
    ExpenseKind,
    LineItem,
    MonthRecord,
    Plan,
    TargetRef,
    Transaction,
    TransactionKind,
    UserVersions,
    coerce_number,
)
from budget_planner.models.sync import (
    LocalVersions,
    SyncOperation,
    SyncQueueItem,
    VersionedSnapshot,
)


class TestNumberNormalization:
    """Tests for numeric fields arriving as text."""

    def test_coerce_text(self):
        """Test that numeric text becomes a float."""
        assert coerce_number("1500.50") == 1500.5
        assert coerce_number("1,200") == 1200.0

    def test_coerce_blank_and_none(self):
        """Test that blank text and None become zero."""
        assert coerce_number("  ") == 0.0
        assert coerce_number(None) == 0.0

    def test_asset_value_from_text(self):
        """Test that an asset's value given as text is usable in sums."""
        asset = Asset.model_validate(
            {"id": "a1", "currentValue": "1000.00", "annualAPY": "4.5"}
        )
        assert asset.current_value == 1000.0
        assert asset.annual_apy == 4.5

    def test_debt_values_from_text(self):
        """Test that a debt's numeric fields given as text are normalized."""
        debt = Debt.model_validate({
            "id": "d1",
            "currentBalance": "500",
            "interestRate": "",
            "minimumPayment": "25.5",
        })
        assert debt.current_balance == 500.0
        assert debt.interest_rate == 0.0
        assert debt.minimum_payment == 25.5

    def test_non_numeric_text_rejected(self):
        """Test that garbage is rejected rather than silently zeroed."""
        with pytest.raises(ValueError):
            Asset.model_validate({"id": "a1", "currentValue": "lots"})


class TestWireFormat:
    """Tests for camelCase serialization."""

    def test_transaction_kind_serialized_as_type(self):
        """Test that Transaction.kind travels as "type"."""
        tx = Transaction(id="t1", kind=TransactionKind.DEBT, target_id="d1", amount=50)
        wire = tx.to_wire()
        assert wire["type"] == "debt"
        assert wire["targetId"] == "d1"
        assert wire["isEditing"] is False
        assert "kind" not in wire

    def test_plan_from_wire(self):
        """Test that a plan in API form parses into snake_case fields."""
        plan = Plan.model_validate({
            "id": "p1",
            "userId": "u1",
            "name": "  Main  ",
            "isActive": True,
            "months": [{
                "month": "2026-01",
                "budgetId": "",
                "netWorth": "100",
                "transactions": None,
            }],
        })
        assert plan.name == "Main"
        assert plan.is_active is True
        assert plan.months[0].budget_id is None
        assert plan.months[0].net_worth == 100.0
        assert plan.months[0].transactions == []

    def test_asset_apy_alias(self):
        """Test that annual_apy uses the API's annualAPY spelling."""
        assert "annualAPY" in Asset(id="a1").to_wire()

    def test_month_key_must_be_valid(self):
        """Test that malformed month keys are rejected."""
        with pytest.raises(ValueError):
            MonthRecord(month="2026-13")

    def test_plan_requires_name(self):
        """Test that an empty plan name is rejected."""
        with pytest.raises(ValueError):
            Plan(name="")


class TestTargetRef:
    """Tests for the transaction target selector."""

    def test_parse_debt(self):
        """Test parsing a debt selector value."""
        ref = TargetRef.parse("debt-abc")
        assert ref.kind is TransactionKind.DEBT
        assert ref.id == "abc"

    def test_parse_splits_on_first_dash_only(self):
        """Test that ids containing dashes survive parsing."""
        ref = TargetRef.parse("asset-7f3e-41aa-9c1d")
        assert ref.kind is TransactionKind.ASSET
        assert ref.id == "7f3e-41aa-9c1d"

    def test_parse_bare_id_defaults_to_asset(self):
        """Test that a value without a kind prefix is an asset id."""
        ref = TargetRef.parse("plain")
        assert ref.kind is TransactionKind.ASSET
        assert ref.id == "plain"

    def test_composite_round_trip(self):
        """Test that composite and parse agree."""
        ref = TargetRef(kind=TransactionKind.DEBT, id="x-1")
        assert TargetRef.parse(ref.composite) == ref


class TestTransactions:
    """Tests for plan transactions."""

    def test_new_transaction_is_temporary(self):
        """Test that unsaved transactions carry a temporary id."""
        tx = Transaction()
        assert tx.is_temporary
        assert tx.target is None

    def test_targets(self):
        """Test matching a transaction against an asset or debt."""
        tx = Transaction(kind=TransactionKind.ASSET, target_id="a1", amount=10)
        assert tx.targets(TransactionKind.ASSET, "a1")
        assert not tx.targets(TransactionKind.DEBT, "a1")


class TestBudgets:
    """Tests for budget totals."""

    @pytest.fixture
    def budget(self):
        return Budget(
            id="b1",
            income=[LineItem(name="Salary", amount=3000)],
            expenses=[
                ExpenseItem(name="Rent", amount=1200),
                ExpenseItem(
                    name="Savings",
                    amount=200,
                    kind=ExpenseKind.ASSET_DEPOSIT,
                    linked_asset_id="a1",
                ),
                ExpenseItem(
                    name="Card",
                    amount=100,
                    kind=ExpenseKind.DEBT_PAYMENT,
                    linked_debt_id="d1",
                ),
            ],
        )

    def test_totals(self, budget):
        """Test that linked expenses are not counted as regular spending."""
        assert budget.total_income == 3000
        assert budget.total_regular_expenses == 1200

    def test_linked_amounts(self, budget):
        """Test deposit and payment lookups by target id."""
        assert budget.deposits_to("a1") == 200
        assert budget.deposits_to("other") == 0
        assert budget.payments_to("d1") == 100

    def test_missing_expense_type_is_regular(self):
        """Test that an expense without a type counts as regular."""
        expense = ExpenseItem.model_validate({"name": "Food", "amount": 50, "type": None})
        assert expense.kind is ExpenseKind.REGULAR
        assert expense.target_id is None


class TestSyncModels:
    """Tests for sync bookkeeping models."""

    def test_version_lookup(self):
        """Test reading one entity type's counter from the vector."""
        versions = UserVersions(global_version=9, plans_version=4)
        assert versions.for_entity(EntityType.PLANS) == 4
        assert versions.for_entity(EntityType.DEBTS) == 0
        assert versions.for_entity(EntityType.USERS) == 9

    def test_local_versions_from_server(self):
        """Test that the local vector copies the server counters."""
        local = LocalVersions.from_server(UserVersions(budgets_version=3))
        assert local.budgets_version == 3
        assert local.last_sync is not None

    def test_queue_item_exhaustion(self):
        """Test the retry cap check."""
        item = SyncQueueItem(
            entity_type=EntityType.PLANS,
            entity_id="p1",
            operation=SyncOperation.UPDATE,
            retry_count=2,
        )
        assert not item.is_exhausted(3)
        assert item.model_copy(update={"retry_count": 3}).is_exhausted(3)

    def test_snapshot_serializes_camel_case(self):
        """Test that cached documents use the wire naming."""
        snapshot = VersionedSnapshot(data=[], version=2, user_id="u1")
        dumped = snapshot.model_dump(by_alias=True)
        assert "lastModified" in dumped
        assert "userId" in dumped


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.CACHE_HIT,
            description="Test event",
        )
        assert event.event_type == AuditEventType.CACHE_HIT
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            user_id="u1",
            correlation_id=correlation_id,
            description="Sync started",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "sync_started"
        assert log_dict["user_id"] == "u1"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_builder_push_failed(self):
        """Test that failed pushes are warnings carrying the retry count."""
        event = AuditEventBuilder.push_failed(
            entity_type="plans",
            entity_id="p1",
            operation="update",
            retry_count=2,
            error_message="timeout",
        )
        assert event.event_type == AuditEventType.PUSH_FAILED
        assert event.severity == AuditSeverity.WARNING
        assert event.details["retry_count"] == 2
        assert event.error_message == "timeout"

    def test_builder_plan_created_is_user_action(self):
        """Test that plan creation is recorded as a user action."""
        event = AuditEventBuilder.plan_created("p1", "Main", True)
        assert event.is_user_action
        assert event.entity_type == "plans"
        assert event.details == {"is_active": True}
