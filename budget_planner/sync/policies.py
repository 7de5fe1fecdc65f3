"""
Cache freshness and conflict policies.

A freshness policy only answers "how usable is this snapshot right
now"; the coordinator decides what to do about it. Pending local
changes are checked by the coordinator before any policy runs.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from budget_planner.config import SyncSettings
from budget_planner.models.sync import SyncMetadata, VersionedSnapshot


class Freshness(str, Enum):
    FRESH = "fresh"
    REFRESH_IN_BACKGROUND = "refresh_in_background"
    EXPIRED = "expired"


class FreshnessPolicy(ABC):
    """Decides whether a cached snapshot can be served as-is."""

    @abstractmethod
    def evaluate(
        self,
        snapshot: VersionedSnapshot,
        metadata: Optional[SyncMetadata],
        now: datetime,
    ) -> Freshness:
        pass


class PendingChangesPolicy(FreshnessPolicy):
    """
    Serve the cache whenever there is one.

    A background refresh is due once the user's last successful sync
    is older than the threshold. The snapshot never expires outright.
    """

    def __init__(self, threshold: timedelta = timedelta(hours=1)):
        self.threshold = threshold

    def evaluate(
        self,
        snapshot: VersionedSnapshot,
        metadata: Optional[SyncMetadata],
        now: datetime,
    ) -> Freshness:
        if metadata is None or metadata.last_successful_sync is None:
            return Freshness.REFRESH_IN_BACKGROUND
        if now - metadata.last_successful_sync > self.threshold:
            return Freshness.REFRESH_IN_BACKGROUND
        return Freshness.FRESH


class TtlPolicy(FreshnessPolicy):
    """
    Time-to-live on the snapshot itself.

    Past half the TTL the snapshot is still served but refreshed in the
    background; past the full TTL it must be refetched.
    """

    def __init__(self, ttl: timedelta = timedelta(minutes=5)):
        self.ttl = ttl

    def evaluate(
        self,
        snapshot: VersionedSnapshot,
        metadata: Optional[SyncMetadata],
        now: datetime,
    ) -> Freshness:
        age = snapshot.age(now)
        if age >= self.ttl:
            return Freshness.EXPIRED
        if age >= self.ttl / 2:
            return Freshness.REFRESH_IN_BACKGROUND
        return Freshness.FRESH


def policy_from_settings(settings: SyncSettings) -> FreshnessPolicy:
    if settings.freshness_policy == "ttl":
        return TtlPolicy(timedelta(seconds=settings.ttl_seconds))
    return PendingChangesPolicy(
        timedelta(seconds=settings.freshness_threshold_seconds)
    )


# =============================================================================
# CONFLICTS
# =============================================================================

class ConflictStrategy(str, Enum):
    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    # No resolution UI exists yet; manual keeps the local copy
    MANUAL = "manual"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_conflict(
    local: dict[str, Any],
    remote: dict[str, Any],
    local_modified: Optional[datetime],
    strategy: ConflictStrategy = ConflictStrategy.LOCAL_WINS,
) -> dict[str, Any]:
    """
    Pick between a local and a remote copy of the same entity.

    A local copy that was never synced (no local_modified) loses to
    the server. Otherwise the newer side wins, comparing local_modified
    with the remote's updatedAt; ties and unknown remote times fall
    back to the strategy.
    """
    if local_modified is None:
        return remote
    if local_modified.tzinfo is None:
        local_modified = local_modified.replace(tzinfo=timezone.utc)

    remote_modified = _parse_timestamp(remote.get("updatedAt"))
    if remote_modified is not None:
        if local_modified > remote_modified:
            return local
        if remote_modified > local_modified:
            return remote

    if strategy is ConflictStrategy.REMOTE_WINS:
        return remote
    return local


def conflict_strategy_from_settings(settings: SyncSettings) -> Optional[ConflictStrategy]:
    if settings.conflict_strategy is None:
        return None
    return ConflictStrategy(settings.conflict_strategy)
