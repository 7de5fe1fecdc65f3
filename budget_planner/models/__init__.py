"""
Data Models Package

This package contains all Pydantic models used by the planner:
entities exchanged with the API, cache/sync documents and audit events.
"""

from budget_planner.models.entities import (
    Asset,
    Budget,
    Debt,
    EntityType,
    ExpenseItem,
    ExpenseKind,
    LineItem,
    MonthRecord,
    Plan,
    TargetRef,
    Transaction,
    TransactionKind,
    User,
    UserVersions,
    VERSIONED_ENTITY_TYPES,
)
from budget_planner.models.sync import (
    LocalVersions,
    SyncMetadata,
    SyncOperation,
    SyncQueueItem,
    SyncReport,
    VersionedSnapshot,
)
from budget_planner.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entity models
    "Asset",
    "Budget",
    "Debt",
    "EntityType",
    "ExpenseItem",
    "ExpenseKind",
    "LineItem",
    "MonthRecord",
    "Plan",
    "TargetRef",
    "Transaction",
    "TransactionKind",
    "User",
    "UserVersions",
    "VERSIONED_ENTITY_TYPES",
    # Sync models
    "LocalVersions",
    "SyncMetadata",
    "SyncOperation",
    "SyncQueueItem",
    "SyncReport",
    "VersionedSnapshot",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
