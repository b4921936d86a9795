"""
Audit Models for fintrack

Every change to a money-bearing record (transactions, accounts, budgets)
is logged with the record's data before and after the change, and every
CSV import leaves one summary event. This provides:
1. Complete traceability of all operations
2. Debugging information when things go wrong
3. Ability to reconstruct history

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    """Row-level change recorded by an audit event."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Row changes
    RECORD_INSERTED = "record_inserted"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"

    # Derived data
    BALANCE_RECOMPUTED = "balance_recomputed"

    # CSV import
    IMPORT_PARSED = "import_parsed"
    IMPORT_COMPLETED = "import_completed"
    IMPORT_FAILED = "import_failed"
    ENTITY_AUTO_CREATED = "entity_auto_created"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Tables whose row changes are audited
AUDITED_TABLES = frozenset({"transactions", "accounts", "budgets"})


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
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and what
    user_id: Optional[UUID] = Field(
        default=None,
        description="Owner of the changed data"
    )
    action: Optional[AuditAction] = None
    table_name: Optional[str] = None
    record_id: Optional[UUID] = None

    # Row snapshots (JSON-safe dicts)
    old_data: Optional[dict[str, Any]] = None
    new_data: Optional[dict[str, Any]] = None

    # Correlation - for tracking related events (e.g. one CSV import)
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.

        Row snapshots are left out; they can be large and the
        persisted event keeps them.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": str(self.user_id) if self.user_id else None,
            "action": self.action.value if self.action else None,
            "table_name": self.table_name,
            "record_id": str(self.record_id) if self.record_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, action, table_name,
         record_id, correlation_id, description, old_data_json, new_data_json,
         details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.user_id) if self.user_id else "",
            self.action.value if self.action else "",
            self.table_name or "",
            str(self.record_id) if self.record_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.old_data) if self.old_data is not None else "",
            json.dumps(self.new_data) if self.new_data is not None else "",
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


def _singular(table_name: str) -> str:
    return table_name[:-1] if table_name.endswith("s") else table_name


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_inserted(user_id, "transactions", txn_id, data)
        event = AuditEventBuilder.import_completed(user_id, "transactions", 40, 2, cid)
    """

    @staticmethod
    def record_inserted(
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        new_data: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_INSERTED,
            user_id=user_id,
            action=AuditAction.INSERT,
            table_name=table_name,
            record_id=record_id,
            new_data=new_data,
            correlation_id=correlation_id,
            description=f"{_singular(table_name).capitalize()} created",
        )

    @staticmethod
    def record_updated(
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        old_data: dict,
        new_data: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        changed = sorted(
            key for key in new_data
            if key != "updated_at" and old_data.get(key) != new_data.get(key)
        )
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            user_id=user_id,
            action=AuditAction.UPDATE,
            table_name=table_name,
            record_id=record_id,
            old_data=old_data,
            new_data=new_data,
            correlation_id=correlation_id,
            description=f"{_singular(table_name).capitalize()} updated",
            details={"changed_fields": changed},
        )

    @staticmethod
    def record_deleted(
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        old_data: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            user_id=user_id,
            action=AuditAction.DELETE,
            table_name=table_name,
            record_id=record_id,
            old_data=old_data,
            correlation_id=correlation_id,
            description=f"{_singular(table_name).capitalize()} deleted",
        )

    @staticmethod
    def balance_recomputed(
        user_id: UUID,
        account_id: UUID,
        old_balance: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_RECOMPUTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            table_name="accounts",
            record_id=account_id,
            correlation_id=correlation_id,
            description=f"Closing balance {old_balance} -> {new_balance}",
            details={
                "old_balance": old_balance,
                "new_balance": new_balance,
            },
        )

    @staticmethod
    def import_parsed(
        user_id: UUID,
        table_name: str,
        filename: str,
        valid_count: int,
        invalid_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_PARSED,
            user_id=user_id,
            table_name=table_name,
            correlation_id=correlation_id,
            description=(
                f"Parsed {filename}: {valid_count} valid, {invalid_count} with errors"
            ),
            details={
                "filename": filename,
                "valid_count": valid_count,
                "invalid_count": invalid_count,
            },
        )

    @staticmethod
    def import_completed(
        user_id: UUID,
        table_name: str,
        imported_count: int,
        skipped_count: int,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            user_id=user_id,
            table_name=table_name,
            correlation_id=correlation_id,
            description=f"Imported {imported_count} {table_name}, skipped {skipped_count}",
            details={
                "imported_count": imported_count,
                "skipped_count": skipped_count,
                **(details or {}),
            },
        )

    @staticmethod
    def import_failed(
        user_id: UUID,
        table_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            table_name=table_name,
            correlation_id=correlation_id,
            description=f"Import of {table_name} failed",
            error_message=error_message,
        )

    @staticmethod
    def entity_auto_created(
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_AUTO_CREATED,
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            correlation_id=correlation_id,
            description=f"Created {_singular(table_name)} '{name}' during import",
            details={"name": name},
        )
