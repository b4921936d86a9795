"""
Audit Logger

Every change to money-bearing records is logged, together with the row
before and after. This provides:
1. Complete traceability
2. Debugging capability
3. User can see history of their data

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events (e.g. one CSV import)
"""

import logging
from typing import Optional
from uuid import UUID

import structlog

from fintrack.models.audit import AUDITED_TABLES, AuditEvent, AuditEventBuilder
from fintrack.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog (JSON lines through the stdlib root logger)."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))
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


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
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
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        self._log_locally(event)

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

    async def log_many(self, events: list[AuditEvent]) -> bool:
        """
        Log a batch of events with one storage append.

        Same failure handling as log(): a storage error is logged, not raised.
        """
        if not events:
            return True
        for event in events:
            self._log_locally(event)

        if self._storage:
            try:
                return await self._storage.append_events(events)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_count=len(events),
                )
                return False

        return True

    def _log_locally(self, event: AuditEvent) -> None:
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def log_records_inserted(
        self,
        table_name: str,
        records: list,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a batch of new rows (pydantic records) in an audited table."""
        if table_name not in AUDITED_TABLES:
            return
        await self.log_many([
            AuditEventBuilder.record_inserted(
                user_id=record.user_id,
                table_name=table_name,
                record_id=record.id,
                new_data=record.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
            for record in records
        ])

    async def log_record_inserted(
        self,
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        new_data: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new row in an audited table."""
        if table_name not in AUDITED_TABLES:
            return
        await self.log(AuditEventBuilder.record_inserted(
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            new_data=new_data,
            correlation_id=correlation_id,
        ))

    async def log_record_updated(
        self,
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        old_data: dict,
        new_data: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a changed row in an audited table."""
        if table_name not in AUDITED_TABLES:
            return
        await self.log(AuditEventBuilder.record_updated(
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            old_data=old_data,
            new_data=new_data,
            correlation_id=correlation_id,
        ))

    async def log_record_deleted(
        self,
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        old_data: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a removed row in an audited table."""
        if table_name not in AUDITED_TABLES:
            return
        await self.log(AuditEventBuilder.record_deleted(
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            old_data=old_data,
            correlation_id=correlation_id,
        ))

    async def log_balance_recomputed(
        self,
        user_id: UUID,
        account_id: UUID,
        old_balance: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_recomputed(
            user_id=user_id,
            account_id=account_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_import_parsed(
        self,
        user_id: UUID,
        table_name: str,
        filename: str,
        valid_count: int,
        invalid_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log that a CSV file was parsed and validated."""
        await self.log(AuditEventBuilder.import_parsed(
            user_id=user_id,
            table_name=table_name,
            filename=filename,
            valid_count=valid_count,
            invalid_count=invalid_count,
            correlation_id=correlation_id,
        ))

    async def log_import_completed(
        self,
        user_id: UUID,
        table_name: str,
        imported_count: int,
        skipped_count: int,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        """Log a committed CSV import."""
        await self.log(AuditEventBuilder.import_completed(
            user_id=user_id,
            table_name=table_name,
            imported_count=imported_count,
            skipped_count=skipped_count,
            correlation_id=correlation_id,
            details=details,
        ))

    async def log_import_failed(
        self,
        user_id: UUID,
        table_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_failed(
            user_id=user_id,
            table_name=table_name,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_entity_auto_created(
        self,
        user_id: UUID,
        table_name: str,
        record_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an account/tag/group created because an import referenced it."""
        await self.log(AuditEventBuilder.entity_auto_created(
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_entities_auto_created(
        self,
        user_id: UUID,
        table_name: str,
        entities: list[tuple[UUID, str]],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log several (record_id, name) pairs created by one import."""
        await self.log_many([
            AuditEventBuilder.entity_auto_created(
                user_id=user_id,
                table_name=table_name,
                record_id=record_id,
                name=name,
                correlation_id=correlation_id,
            )
            for record_id, name in entities
        ])
