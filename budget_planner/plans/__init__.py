"""User-facing plan operations."""

from budget_planner.plans.service import (
    InvalidMonthIndexError,
    PlanError,
    PlanLoadError,
    PlanMutationService,
    PlanNotFoundError,
    TransactionNotFoundError,
)

__all__ = [
    "InvalidMonthIndexError",
    "PlanError",
    "PlanLoadError",
    "PlanMutationService",
    "PlanNotFoundError",
    "TransactionNotFoundError",
]
