"""
Rolling-window alignment.

A plan always covers the 24 months starting with the month after
today. When the calendar moves on, the window is either shifted (the
retained months keep their budgets and transactions) or, if nothing
can be salvaged, regenerated from scratch.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum

from budget_planner.engine.calendar import (
    PLAN_WINDOW_MONTHS,
    add_months,
    build_months,
    months_between,
    next_month_key,
)
from budget_planner.models.entities import MonthRecord, Plan


class WindowAction(str, Enum):
    ALIGNED = "aligned"
    SHIFT = "shift"
    REGENERATE = "regenerate"


@dataclass(frozen=True)
class AlignmentResult:
    """Outcome of aligning one plan; months is the new window."""
    action: WindowAction
    delta: int
    months: list[MonthRecord]

    @property
    def changed(self) -> bool:
        return self.action is not WindowAction.ALIGNED


def _is_well_formed(months: list[MonthRecord]) -> bool:
    """Exactly one window's worth of consecutive months."""
    if len(months) != PLAN_WINDOW_MONTHS:
        return False
    first = months[0].month
    return all(
        record.month == add_months(first, offset)
        for offset, record in enumerate(months)
    )


def align_window(plan: Plan, today: date, current_net_worth: float) -> AlignmentResult:
    """
    Work out the window plan should have as of today.

    Fresh months carry current_net_worth as a placeholder until the
    next projection. A window that is not 24 consecutive months is
    regenerated. The plan itself is left untouched.
    """
    start = next_month_key(today)

    if not _is_well_formed(plan.months):
        return AlignmentResult(
            action=WindowAction.REGENERATE,
            delta=0,
            months=build_months(start, PLAN_WINDOW_MONTHS, current_net_worth),
        )

    delta = months_between(plan.months[0].month, start)

    if delta == 0:
        return AlignmentResult(WindowAction.ALIGNED, 0, list(plan.months))

    if 0 < delta < PLAN_WINDOW_MONTHS:
        retained = list(plan.months[delta:])
        fresh = build_months(
            add_months(start, PLAN_WINDOW_MONTHS - delta),
            delta,
            current_net_worth,
        )
        return AlignmentResult(WindowAction.SHIFT, delta, retained + fresh)

    # Plan starts in the future, or is too old to salvage
    return AlignmentResult(
        action=WindowAction.REGENERATE,
        delta=delta,
        months=build_months(start, PLAN_WINDOW_MONTHS, current_net_worth),
    )
