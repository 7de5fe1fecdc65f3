"""Plan projection engine: pure calculations, no I/O."""

from budget_planner.engine.calendar import (
    PLAN_WINDOW_MONTHS,
    add_months,
    build_months,
    months_between,
    next_month_key,
)
from budget_planner.engine.projection import (
    age_on,
    asset_value_at,
    assets_total,
    current_net_worth,
    debt_remaining_at,
    debts_total,
    project_net_worth,
)
from budget_planner.engine.references import (
    PrunedLink,
    PruneResult,
    prune_dangling_links,
)
from budget_planner.engine.window import (
    AlignmentResult,
    WindowAction,
    align_window,
)

__all__ = [
    "PLAN_WINDOW_MONTHS",
    "add_months",
    "build_months",
    "months_between",
    "next_month_key",
    "age_on",
    "asset_value_at",
    "assets_total",
    "current_net_worth",
    "debt_remaining_at",
    "debts_total",
    "project_net_worth",
    "PrunedLink",
    "PruneResult",
    "prune_dangling_links",
    "AlignmentResult",
    "WindowAction",
    "align_window",
]
