"""
Plan Mutation Service

Orchestrates user edits to plans. Every persistent mutation follows
the same path:
1. Change the in-memory plan
2. Recompute net worth through the projection engine
3. Hand the plan to the SyncCoordinator, which caches and pushes it

DESIGN DECISION: Transactions still being edited (temporary ids) stay
in memory only. They are stripped from every persisted copy of the
plan, so saving one transaction never publishes another half-typed one.
"""

import asyncio
from collections.abc import Callable, Iterable
from datetime import date
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from budget_planner.audit import AuditLogger, create_correlation_id
from budget_planner.engine import (
    PLAN_WINDOW_MONTHS,
    align_window,
    build_months,
    current_net_worth,
    next_month_key,
    project_net_worth,
    prune_dangling_links,
)
from budget_planner.models.audit import AuditEventBuilder
from budget_planner.models.entities import (
    TEMPORARY_ID_PREFIX,
    Asset,
    Budget,
    Debt,
    EntityType,
    Plan,
    TargetRef,
    Transaction,
    TransactionKind,
    new_entity_id,
)
from budget_planner.sync import EntityLoadError, SyncCoordinator


logger = structlog.get_logger(__name__)


class PlanError(Exception):
    """Base exception for plan operations."""
    pass


class PlanNotFoundError(PlanError):
    pass


class InvalidMonthIndexError(PlanError):
    pass


class TransactionNotFoundError(PlanError):
    pass


class PlanLoadError(PlanError):
    """Plans or the entities they reference could not be loaded."""

    def __init__(self, message: str = "Failed to load plans data"):
        super().__init__(message)


def _persistable(plan: Plan) -> dict[str, Any]:
    """Wire form of a plan without unsaved transactions."""
    data = plan.to_wire()
    for month in data["months"]:
        month["transactions"] = [
            tx for tx in month["transactions"]
            if not tx["id"].startswith(TEMPORARY_ID_PREFIX)
        ]
    return data


class PlanMutationService:
    """
    In-memory view of the user's plans plus the operations on them.

    Budgets, assets and debts are held read-only for projections.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        audit_logger: Optional[AuditLogger] = None,
        today: Callable[[], date] = date.today,
    ):
        self._coordinator = coordinator
        self._audit = audit_logger or AuditLogger()
        self._today = today

        self.plans: list[Plan] = []
        self.budgets: list[Budget] = []
        self.assets: list[Asset] = []
        self.debts: list[Debt] = []
        self.selected_plan_id: Optional[str] = None

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    @property
    def current_net_worth(self) -> float:
        return current_net_worth(self.assets, self.debts)

    @property
    def selected_plan(self) -> Optional[Plan]:
        for plan in self.plans:
            if plan.id == self.selected_plan_id:
                return plan
        return None

    def get_plan(self, plan_id: str) -> Plan:
        for plan in self.plans:
            if plan.id == plan_id:
                return plan
        raise PlanNotFoundError(f"Plan {plan_id} not found")

    def _require_selected(self) -> Plan:
        plan = self.selected_plan
        if plan is None:
            raise PlanNotFoundError("No plan selected")
        return plan

    @staticmethod
    def _check_month(plan: Plan, month_index: int) -> None:
        if not 0 <= month_index < len(plan.months):
            raise InvalidMonthIndexError(
                f"Month index {month_index} outside plan window of {len(plan.months)}"
            )

    @staticmethod
    def _find_transaction(plan: Plan, month_index: int, transaction_id: str) -> int:
        for index, tx in enumerate(plan.months[month_index].transactions):
            if tx.id == transaction_id:
                return index
        raise TransactionNotFoundError(
            f"Transaction {transaction_id} not found in {plan.months[month_index].month}"
        )

    def _choose_selection(self) -> None:
        if self.selected_plan is not None:
            return
        active = [plan for plan in self.plans if plan.is_active]
        chosen = active[0] if active else (self.plans[0] if self.plans else None)
        self.selected_plan_id = chosen.id if chosen else None

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _recompute(self, plan: Plan, start_index: int = 0) -> None:
        plan.months = project_net_worth(
            plan, self.budgets, self.assets, self.debts, start_index
        )

    async def _persist(
        self,
        plan: Plan,
        start_index: int = 0,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self._recompute(plan, start_index)
        plan.touch()
        await self._coordinator.update(
            EntityType.PLANS, _persistable(plan), correlation_id=correlation_id
        )

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self) -> list[Plan]:
        """
        Load plans and their reference data, then repair them.

        Dangling budget links are pruned and persisted, and every plan's
        window is aligned to the current month.

        Raises:
            PlanLoadError: any collection could not be loaded or parsed
        """
        try:
            plans_data, budgets_data, assets_data, debts_data = await asyncio.gather(
                self._coordinator.get_data(EntityType.PLANS),
                self._coordinator.get_data(EntityType.BUDGETS),
                self._coordinator.get_data(EntityType.ASSETS),
                self._coordinator.get_data(EntityType.DEBTS),
            )
            plans = [Plan.model_validate(record) for record in plans_data]
            budgets = [Budget.model_validate(record) for record in budgets_data]
            self.assets = [Asset.model_validate(record) for record in assets_data]
            self.debts = [Debt.model_validate(record) for record in debts_data]
        except (EntityLoadError, ValidationError) as e:
            logger.error("plans_load_failed", error=str(e))
            raise PlanLoadError() from e

        pruned = prune_dangling_links(budgets, self.assets, self.debts)
        self.budgets = pruned.budgets
        for link in pruned.removed:
            logger.warning(
                "budget_link_pruned",
                budget_id=link.budget_id,
                expense=link.expense_name,
                missing_id=link.missing_id,
            )
            await self._audit.log(AuditEventBuilder.budget_link_pruned(
                link.budget_id,
                link.expense_name,
                link.missing_kind.value,
                link.missing_id,
            ))
        for budget in pruned.changed_budgets:
            await self._coordinator.update(EntityType.BUDGETS, budget.to_wire())

        self.plans = plans
        await self.refresh_window()
        for plan in self.plans:
            self._recompute(plan)
        self._choose_selection()
        return self.plans

    async def refresh_window(self, today: Optional[date] = None) -> list[Plan]:
        """
        Align every plan's window with the calendar; returns the plans that moved.

        Call again whenever the month may have changed; an aligned plan
        is left untouched.
        """
        today = today or self._today()
        correlation_id = create_correlation_id()
        moved: list[Plan] = []
        for plan in self.plans:
            result = align_window(plan, today, self.current_net_worth)
            if not result.changed:
                continue
            plan.months = result.months
            await self._persist(plan, correlation_id=correlation_id)
            await self._audit.log(AuditEventBuilder.plan_window_aligned(
                plan.id,
                result.action.value,
                result.delta,
                plan.months[0].month,
                correlation_id,
            ))
            moved.append(plan)
        return moved

    def set_reference_data(
        self,
        budgets: Optional[Iterable[Budget]] = None,
        assets: Optional[Iterable[Asset]] = None,
        debts: Optional[Iterable[Debt]] = None,
    ) -> None:
        """Swap in changed budgets, assets or debts and re-project every plan."""
        if budgets is not None:
            self.budgets = list(budgets)
        if assets is not None:
            self.assets = list(assets)
        if debts is not None:
            self.debts = list(debts)
        for plan in self.plans:
            self._recompute(plan)

    # =========================================================================
    # PLAN OPERATIONS
    # =========================================================================

    async def create_plan(
        self,
        name: str,
        description: str = "",
        autofill_budget_id: Optional[str] = None,
    ) -> Plan:
        """
        Create a plan covering the 24 months after today and select it.

        The first plan a user creates becomes the active one.
        """
        correlation_id = create_correlation_id()
        plan = Plan(
            user_id=await self._coordinator.current_user_id(),
            name=name,
            description=description,
            is_active=not self.plans,
            months=build_months(
                next_month_key(self._today()),
                PLAN_WINDOW_MONTHS,
                self.current_net_worth,
                autofill_budget_id or None,
            ),
        )
        self._recompute(plan)

        known_ids = {p.id for p in self.plans}
        records = await self._coordinator.create(
            EntityType.PLANS, plan.to_wire(), correlation_id=correlation_id
        )
        # The server may have assigned its own id
        stored = next(
            (r for r in records if r.get("id") == plan.id),
            next((r for r in records if r.get("id") not in known_ids), None),
        )
        if stored is not None and stored.get("id") != plan.id:
            plan = Plan.model_validate(stored)

        self.plans.append(plan)
        self.selected_plan_id = plan.id
        await self._audit.log(AuditEventBuilder.plan_created(
            plan.id, plan.name, plan.is_active, correlation_id,
        ))
        return plan

    async def select_plan(self, plan_id: str) -> Plan:
        """Select a plan and make it the only active one."""
        target = self.get_plan(plan_id)
        correlation_id = create_correlation_id()
        for plan in self.plans:
            is_active = plan.id == plan_id
            if plan.is_active != is_active:
                plan.is_active = is_active
                plan.touch()
                await self._coordinator.update(
                    EntityType.PLANS, _persistable(plan), correlation_id=correlation_id
                )
        self.selected_plan_id = plan_id
        await self._audit.log(AuditEventBuilder.plan_activated(plan_id, correlation_id))
        return target

    async def rename_plan(self, new_name: str) -> Plan:
        """Rename the selected plan; blank names are ignored."""
        plan = self._require_selected()
        new_name = (new_name or "").strip()
        if not new_name:
            return plan
        plan.name = new_name
        await self._persist(plan)
        await self._audit.log(AuditEventBuilder.plan_updated(plan.id, "renamed"))
        return plan

    async def delete_plan(self) -> Optional[Plan]:
        """
        Delete the selected plan.

        If it was active, the first remaining plan is activated and
        selected. Returns that plan, if any. Otherwise the selection
        falls back to the active plan.
        """
        plan = self._require_selected()
        correlation_id = create_correlation_id()
        await self._coordinator.delete(
            EntityType.PLANS, plan.id, correlation_id=correlation_id
        )
        self.plans = [p for p in self.plans if p.id != plan.id]
        self.selected_plan_id = None

        reactivated = None
        if plan.is_active and self.plans:
            reactivated = self.plans[0]
            reactivated.is_active = True
            reactivated.touch()
            await self._coordinator.update(
                EntityType.PLANS, _persistable(reactivated), correlation_id=correlation_id
            )
            self.selected_plan_id = reactivated.id
            await self._audit.log(AuditEventBuilder.plan_activated(
                reactivated.id, correlation_id,
            ))
        else:
            self._choose_selection()

        await self._audit.log(AuditEventBuilder.plan_deleted(
            plan.id, reactivated.id if reactivated else None, correlation_id,
        ))
        return reactivated

    async def assign_budget_to_month(
        self,
        month_index: int,
        budget_id: Optional[str],
    ) -> Plan:
        """Apply a budget to one month (None or "" clears it)."""
        plan = self._require_selected()
        self._check_month(plan, month_index)
        plan.months[month_index].budget_id = budget_id or None
        await self._persist(plan, start_index=month_index)
        await self._audit.log(AuditEventBuilder.plan_updated(
            plan.id, f"budget for {plan.months[month_index].month}",
        ))
        return plan

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def add_empty_transaction(self, month_index: int) -> Transaction:
        """Start a new, unsaved transaction in a month of the selected plan."""
        plan = self._require_selected()
        self._check_month(plan, month_index)
        transaction = Transaction(is_editing=True)
        plan.months[month_index].transactions.append(transaction)
        return transaction

    def update_transaction_field(
        self,
        month_index: int,
        transaction_id: str,
        field: str,
        value: Union[TargetRef, str, float, None],
    ) -> Transaction:
        """
        Change one field of a transaction without persisting it.

        field "target" accepts a TargetRef or the selector's "kind-id"
        string; other fields are set by name.
        """
        plan = self._require_selected()
        self._check_month(plan, month_index)
        transactions = plan.months[month_index].transactions
        index = self._find_transaction(plan, month_index, transaction_id)

        if field == "target":
            target = value if isinstance(value, TargetRef) else TargetRef.parse(str(value or ""))
            changes = {"kind": target.kind, "target_id": target.id}
        elif field in ("kind", "type"):
            changes = {"kind": TransactionKind(value)}
        elif field in ("target_id", "targetId"):
            changes = {"target_id": value or ""}
        elif field == "amount":
            changes = {"amount": value}
        elif field == "description":
            changes = {"description": value or ""}
        else:
            raise ValueError(f"Unknown transaction field: {field}")

        merged = transactions[index].model_dump()
        merged.update(changes)
        transactions[index] = Transaction.model_validate(merged)
        return transactions[index]

    async def save_transaction(self, month_index: int, transaction_id: str) -> Optional[Transaction]:
        """
        Commit an edited transaction.

        One without a target or with a zero amount is discarded instead
        and None is returned.
        """
        plan = self._require_selected()
        self._check_month(plan, month_index)
        month = plan.months[month_index]
        index = self._find_transaction(plan, month_index, transaction_id)
        transaction = month.transactions[index]

        if not transaction.target_id or transaction.amount == 0:
            reason = "no target" if not transaction.target_id else "zero amount"
            await self.remove_transaction(month_index, transaction_id)
            await self._audit.log(AuditEventBuilder.transaction_discarded(
                plan.id, transaction_id, month.month, reason,
            ))
            return None

        saved = transaction.model_copy(update={
            "id": new_entity_id() if transaction.is_temporary else transaction.id,
            "is_editing": False,
        })
        month.transactions[index] = saved
        correlation_id = create_correlation_id()
        await self._persist(plan, start_index=month_index, correlation_id=correlation_id)
        await self._audit.log(AuditEventBuilder.transaction_saved(
            plan.id, saved.id, month.month, saved.amount, correlation_id,
        ))
        return saved

    async def remove_transaction(self, month_index: int, transaction_id: str) -> Plan:
        plan = self._require_selected()
        self._check_month(plan, month_index)
        month = plan.months[month_index]
        month.transactions = [tx for tx in month.transactions if tx.id != transaction_id]
        await self._persist(plan, start_index=month_index)
        return plan
