"""
Financial Projection

Pure calculations over a plan and the entities it references. Nothing
here performs I/O or mutates its inputs.

Net worth uses a single formula everywhere:

    projected assets + cumulative income
        - cumulative regular expenses - projected debts

Linked expenses (asset deposits, debt payments) are not subtracted as
spending; they show up through the projected asset and debt values.
"""

from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from typing import Optional

from budget_planner.models.entities import (
    Asset,
    Budget,
    Debt,
    MonthRecord,
    Plan,
    TransactionKind,
)


def _budget_index(budgets: Iterable[Budget]) -> dict[str, Budget]:
    return {budget.id: budget for budget in budgets}


def _budget_for(month: MonthRecord, budgets: Mapping[str, Budget]) -> Optional[Budget]:
    if not month.budget_id:
        return None
    return budgets.get(month.budget_id)


def _cumulative_contributions(
    kind: TransactionKind,
    entity_id: str,
    plan: Plan,
    through_index: int,
    budgets: Mapping[str, Budget],
) -> float:
    """Linked budget expenses plus transactions for one target, months 0..through_index."""
    total = 0.0
    for month in plan.months[:through_index + 1]:
        budget = _budget_for(month, budgets)
        if budget is not None:
            if kind is TransactionKind.ASSET:
                total += budget.deposits_to(entity_id)
            else:
                total += budget.payments_to(entity_id)
        total += sum(
            tx.amount for tx in month.transactions
            if tx.targets(kind, entity_id)
        )
    return total


def asset_value_at(
    asset: Asset,
    month_key: str,
    plan: Plan,
    budgets: Iterable[Budget],
) -> float:
    """
    Projected value of an asset at the end of month_key.

    Months outside the plan window return the baseline unchanged.
    """
    index = plan.month_index(month_key)
    if index < 0:
        return asset.current_value
    return asset.current_value + _cumulative_contributions(
        TransactionKind.ASSET, asset.id, plan, index, _budget_index(budgets)
    )


def debt_remaining_at(
    debt: Debt,
    month_key: str,
    plan: Plan,
    budgets: Iterable[Budget],
) -> float:
    """
    Projected balance of a debt at the end of month_key, never below zero.

    Months outside the plan window return the baseline unchanged.
    """
    index = plan.month_index(month_key)
    if index < 0:
        return debt.current_balance
    paid = _cumulative_contributions(
        TransactionKind.DEBT, debt.id, plan, index, _budget_index(budgets)
    )
    return max(0.0, debt.current_balance - paid)


def project_net_worth(
    plan: Plan,
    budgets: Iterable[Budget],
    assets: Sequence[Asset],
    debts: Sequence[Debt],
    start_index: int = 0,
) -> list[MonthRecord]:
    """
    Recompute every month's net worth from start_index onward.

    Returns new month records; months before start_index are returned
    as they are. Cumulative sums always run from month 0.
    """
    budget_map = _budget_index(budgets)
    budget_list = list(budget_map.values())
    start_index = max(0, start_index)

    projected: list[MonthRecord] = []
    cumulative_income = 0.0
    cumulative_regular = 0.0
    for index, month in enumerate(plan.months):
        budget = _budget_for(month, budget_map)
        if budget is not None:
            cumulative_income += budget.total_income
            cumulative_regular += budget.total_regular_expenses

        if index < start_index:
            projected.append(month)
            continue

        total_assets = sum(
            asset_value_at(asset, month.month, plan, budget_list) for asset in assets
        )
        total_debts = sum(
            debt_remaining_at(debt, month.month, plan, budget_list) for debt in debts
        )
        net_worth = total_assets + cumulative_income - cumulative_regular - total_debts
        projected.append(month.model_copy(update={"net_worth": net_worth}))
    return projected


# =============================================================================
# DASHBOARD TOTALS
# =============================================================================

def assets_total(assets: Iterable[Asset]) -> float:
    return sum(asset.current_value for asset in assets)


def debts_total(debts: Iterable[Debt]) -> float:
    return sum(debt.current_balance for debt in debts)


def current_net_worth(assets: Iterable[Asset], debts: Iterable[Debt]) -> float:
    """Today's net worth: baseline assets minus baseline debts."""
    return assets_total(assets) - debts_total(debts)


def age_on(birthday: str, today: date) -> int:
    """
    Whole years between an ISO birthday and today.

    A time component ("1990-05-01T00:00:00Z") is ignored.
    """
    born = date.fromisoformat(birthday.split("T")[0])
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age
