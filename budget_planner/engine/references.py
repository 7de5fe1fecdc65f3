"""
Dangling reference detection.

Budgets reference assets and debts only by id. When one of those is
deleted, the linked expense lines pointing at it are dropped from the
budget so projections stop counting deposits into nothing.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

from budget_planner.models.entities import (
    Asset,
    Budget,
    Debt,
    ExpenseItem,
    ExpenseKind,
    TransactionKind,
)


@dataclass(frozen=True)
class PrunedLink:
    budget_id: str
    expense_name: str
    missing_kind: TransactionKind
    missing_id: str


@dataclass
class PruneResult:
    """Cleaned budgets plus what was removed from them."""
    budgets: list[Budget]
    removed: list[PrunedLink] = field(default_factory=list)

    @property
    def changed_budgets(self) -> list[Budget]:
        changed_ids = {link.budget_id for link in self.removed}
        return [budget for budget in self.budgets if budget.id in changed_ids]


def _dangling_target(
    expense: ExpenseItem,
    asset_ids: set[str],
    debt_ids: set[str],
) -> Optional[tuple[TransactionKind, str]]:
    # A linked expense without a target id is incomplete, not dangling
    if expense.kind is ExpenseKind.ASSET_DEPOSIT and expense.linked_asset_id:
        if expense.linked_asset_id not in asset_ids:
            return TransactionKind.ASSET, expense.linked_asset_id
    if expense.kind is ExpenseKind.DEBT_PAYMENT and expense.linked_debt_id:
        if expense.linked_debt_id not in debt_ids:
            return TransactionKind.DEBT, expense.linked_debt_id
    return None


def prune_dangling_links(
    budgets: Sequence[Budget],
    assets: Iterable[Asset],
    debts: Iterable[Debt],
) -> PruneResult:
    """Drop linked expenses whose asset or debt no longer exists."""
    asset_ids = {asset.id for asset in assets}
    debt_ids = {debt.id for debt in debts}

    result = PruneResult(budgets=[])
    for budget in budgets:
        kept: list[ExpenseItem] = []
        for expense in budget.expenses:
            missing = _dangling_target(expense, asset_ids, debt_ids)
            if missing is None:
                kept.append(expense)
                continue
            kind, missing_id = missing
            result.removed.append(PrunedLink(
                budget_id=budget.id,
                expense_name=expense.name,
                missing_kind=kind,
                missing_id=missing_id,
            ))
        if len(kept) == len(budget.expenses):
            result.budgets.append(budget)
        else:
            result.budgets.append(budget.model_copy(update={"expenses": kept}))
    return result
