"""Local-first synchronization between the entity cache and the remote API."""

from budget_planner.sync.coordinator import (
    EntityLoadError,
    FetchRemote,
    SyncCoordinator,
    UserIdProvider,
    static_user,
)
from budget_planner.sync.policies import (
    ConflictStrategy,
    Freshness,
    FreshnessPolicy,
    PendingChangesPolicy,
    TtlPolicy,
    conflict_strategy_from_settings,
    policy_from_settings,
    resolve_conflict,
)
from budget_planner.sync.queue import SyncQueue

__all__ = [
    "EntityLoadError",
    "FetchRemote",
    "SyncCoordinator",
    "UserIdProvider",
    "static_user",
    "ConflictStrategy",
    "Freshness",
    "FreshnessPolicy",
    "PendingChangesPolicy",
    "TtlPolicy",
    "conflict_strategy_from_settings",
    "policy_from_settings",
    "resolve_conflict",
    "SyncQueue",
]
