"""
Audit Logger

DESIGN DECISION: Every significant cache, sync and plan action is logged.
This provides:
1. Traceability of cache hits, stale reads and failed pushes
2. Debugging capability for sync runs (via correlation IDs)
3. A record of automatic plan changes the user did not make

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_planner.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from budget_planner.models.sync import SyncQueueItem
from budget_planner.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level))


_SEVERITY_METHODS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budget_planner.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_method = getattr(self._logger, _SEVERITY_METHODS[event.severity])
        log_method("audit_event", **event.to_log_dict())

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_cache_hit(self, entity_type: str, user_id: str, version: int) -> None:
        await self.log(AuditEventBuilder.cache_hit(entity_type, user_id, version))

    async def log_cache_miss(self, entity_type: str, user_id: str, reason: str) -> None:
        await self.log(AuditEventBuilder.cache_miss(entity_type, user_id, reason))

    async def log_stale_cache_served(
        self,
        entity_type: str,
        user_id: str,
        error_message: str,
    ) -> None:
        """Log that a failed fetch was answered from the cache."""
        await self.log(AuditEventBuilder.stale_cache_served(
            entity_type, user_id, error_message,
        ))

    async def log_entity_load_failed(
        self,
        entity_type: str,
        user_id: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.entity_load_failed(
            entity_type, user_id, error_message,
        ))

    async def log_snapshot_stored(
        self,
        entity_type: str,
        user_id: str,
        version: int,
        from_sync: bool,
    ) -> None:
        await self.log(AuditEventBuilder.snapshot_stored(
            entity_type, user_id, version, from_sync,
        ))

    async def log_local_write_failed(self, key: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.local_write_failed(key, error_message))

    async def log_push_succeeded(
        self,
        item: SyncQueueItem,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.push_succeeded(
            entity_type=item.entity_type.value,
            entity_id=item.entity_id,
            operation=item.operation.value,
            correlation_id=correlation_id,
        ))

    async def log_push_failed(
        self,
        item: SyncQueueItem,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed push; item.retry_count already includes this attempt."""
        await self.log(AuditEventBuilder.push_failed(
            entity_type=item.entity_type.value,
            entity_id=item.entity_id,
            operation=item.operation.value,
            retry_count=item.retry_count,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_retries_exhausted(self, item: SyncQueueItem) -> None:
        await self.log(AuditEventBuilder.retries_exhausted(
            entity_type=item.entity_type.value,
            entity_id=item.entity_id,
            queue_item_id=item.id,
            retry_count=item.retry_count,
        ))

    async def log_queue_item_discarded(self, item: SyncQueueItem) -> None:
        await self.log(AuditEventBuilder.queue_item_discarded(
            entity_type=item.entity_type.value,
            entity_id=item.entity_id,
            queue_item_id=item.id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action or a sync run and pass
    it through all subsequent operations.
    """
    return uuid4()
