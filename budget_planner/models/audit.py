"""
Audit Models for Budget Planner

Every significant cache, sync and plan action is logged for audit purposes.
This provides:
1. Traceability of what was served from cache versus fetched
2. Debugging information when a push or sync fails
3. A record of automatic changes (window shifts, pruned budget links)
   that the user did not make themselves

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_planner.models.entities import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Cache reads
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    STALE_CACHE_SERVED = "stale_cache_served"
    ENTITY_LOAD_FAILED = "entity_load_failed"

    # Cache writes
    SNAPSHOT_STORED = "snapshot_stored"
    LOCAL_WRITE_FAILED = "local_write_failed"

    # Optimistic pushes
    PUSH_SUCCEEDED = "push_succeeded"
    PUSH_FAILED = "push_failed"
    RETRIES_EXHAUSTED = "retries_exhausted"
    QUEUE_ITEM_DISCARDED = "queue_item_discarded"

    # Version sync
    SYNC_STARTED = "sync_started"
    ENTITY_TYPE_SYNCED = "entity_type_synced"
    ENTITY_TYPE_SYNC_FAILED = "entity_type_sync_failed"
    CONFLICT_RESOLVED = "conflict_resolved"
    SYNC_COMPLETED = "sync_completed"

    # Plans
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"
    PLAN_DELETED = "plan_deleted"
    PLAN_ACTIVATED = "plan_activated"
    PLAN_WINDOW_ALIGNED = "plan_window_aligned"
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DISCARDED = "transaction_discarded"

    # Budgets
    BUDGET_LINK_PRUNED = "budget_link_pruned"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Entity collection (e.g., 'plans', 'budgets')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one sync run)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.cache_hit("plans", user_id)
        event = AuditEventBuilder.push_failed(item, error, correlation_id)
    """

    @staticmethod
    def cache_hit(entity_type: str, user_id: str, version: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_HIT,
            severity=AuditSeverity.DEBUG,
            entity_type=entity_type,
            user_id=user_id,
            description=f"Served {entity_type} from cache (v{version})",
            details={"version": version},
        )

    @staticmethod
    def cache_miss(entity_type: str, user_id: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_MISS,
            entity_type=entity_type,
            user_id=user_id,
            description=f"Fetching {entity_type} from server: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def stale_cache_served(
        entity_type: str,
        user_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_CACHE_SERVED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            user_id=user_id,
            description=f"Server unavailable, served cached {entity_type}",
            error_message=error_message,
        )

    @staticmethod
    def entity_load_failed(
        entity_type: str,
        user_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            user_id=user_id,
            description=f"Failed to load {entity_type}",
            error_message=error_message,
        )

    @staticmethod
    def snapshot_stored(
        entity_type: str,
        user_id: str,
        version: int,
        from_sync: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_STORED,
            severity=AuditSeverity.DEBUG,
            entity_type=entity_type,
            user_id=user_id,
            description=f"Stored {entity_type} snapshot v{version}",
            details={"version": version, "from_sync": from_sync},
        )

    @staticmethod
    def local_write_failed(
        key: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_WRITE_FAILED,
            severity=AuditSeverity.WARNING,
            description=f"Local cache write failed for {key}",
            error_message=error_message,
            details={"key": key},
        )

    @staticmethod
    def push_succeeded(
        entity_type: str,
        entity_id: str,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PUSH_SUCCEEDED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Pushed {operation} of {entity_type}/{entity_id}",
            details={"operation": operation},
        )

    @staticmethod
    def push_failed(
        entity_type: str,
        entity_id: str,
        operation: str,
        retry_count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PUSH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=(
                f"Push of {operation} {entity_type}/{entity_id} failed "
                f"(attempt {retry_count})"
            ),
            error_message=error_message,
            details={"operation": operation, "retry_count": retry_count},
        )

    @staticmethod
    def retries_exhausted(
        entity_type: str,
        entity_id: str,
        queue_item_id: str,
        retry_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RETRIES_EXHAUSTED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            description=(
                f"Giving up pushing {entity_type}/{entity_id} after "
                f"{retry_count} attempts; change kept locally"
            ),
            details={"queue_item_id": queue_item_id, "retry_count": retry_count},
        )

    @staticmethod
    def queue_item_discarded(
        entity_type: str,
        entity_id: str,
        queue_item_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUEUE_ITEM_DISCARDED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Discarded queued change to {entity_type}/{entity_id}",
            details={"queue_item_id": queue_item_id},
            is_user_action=True,
        )

    @staticmethod
    def sync_started(
        user_id: str,
        full_sync: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        kind = "Full" if full_sync else "Incremental"
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{kind} sync started",
            details={"full_sync": full_sync},
        )

    @staticmethod
    def entity_type_synced(
        entity_type: str,
        version: int,
        count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_TYPE_SYNCED,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Synced {count} {entity_type} at server v{version}",
            details={"version": version, "count": count},
        )

    @staticmethod
    def entity_type_sync_failed(
        entity_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_TYPE_SYNC_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Sync of {entity_type} failed",
            error_message=error_message,
        )

    @staticmethod
    def conflict_resolved(
        entity_type: str,
        entity_id: str,
        winner: str,
        strategy: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFLICT_RESOLVED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Kept the {winner} copy of {entity_type}/{entity_id}",
            details={"winner": winner, "strategy": strategy},
        )

    @staticmethod
    def sync_completed(
        user_id: str,
        synced: list[str],
        failed: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            user_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"Sync completed: {len(synced)} synced, {len(failed)} failed"
            ),
            details={"synced": synced, "failed": failed},
        )

    @staticmethod
    def plan_created(
        plan_id: str,
        name: str,
        is_active: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_CREATED,
            entity_type="plans",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=f"Plan created: {name}",
            details={"is_active": is_active},
            is_user_action=True,
        )

    @staticmethod
    def plan_updated(
        plan_id: str,
        change: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_UPDATED,
            entity_type="plans",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=f"Plan updated: {change}",
            details={"change": change},
            is_user_action=True,
        )

    @staticmethod
    def plan_deleted(
        plan_id: str,
        reactivated_plan_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_DELETED,
            entity_type="plans",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description="Plan deleted",
            details={"reactivated_plan_id": reactivated_plan_id},
            is_user_action=True,
        )

    @staticmethod
    def plan_activated(
        plan_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_ACTIVATED,
            entity_type="plans",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description="Plan set as active",
            is_user_action=True,
        )

    @staticmethod
    def plan_window_aligned(
        plan_id: str,
        action: str,
        delta: int,
        first_month: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_WINDOW_ALIGNED,
            entity_type="plans",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=f"Plan window {action} (delta {delta}), now starts {first_month}",
            details={"action": action, "delta": delta, "first_month": first_month},
        )

    @staticmethod
    def transaction_saved(
        plan_id: str,
        transaction_id: str,
        month: str,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="plans",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=f"Transaction saved in {month}",
            details={
                "transaction_id": transaction_id,
                "month": month,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_discarded(
        plan_id: str,
        transaction_id: str,
        month: str,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DISCARDED,
            entity_type="plans",
            entity_id=plan_id,
            description=f"Transaction in {month} discarded: {reason}",
            details={"transaction_id": transaction_id, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def budget_link_pruned(
        budget_id: str,
        expense_name: str,
        missing_kind: str,
        missing_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_LINK_PRUNED,
            severity=AuditSeverity.WARNING,
            entity_type="budgets",
            entity_id=budget_id,
            description=(
                f"Removed expense \"{expense_name}\": linked {missing_kind} "
                f"no longer exists"
            ),
            details={"missing_kind": missing_kind, "missing_id": missing_id},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
