"""
In-Memory Storage Implementation

Keeps every table in a dict for the life of the process. Used by the
test-suite and by `STORAGE_BACKEND=memory` for demos. Records are
copied on the way in and on the way out, so callers see the same
isolation they would get from a real backend.
"""

from typing import Any, Optional
from uuid import UUID

from fintrack.models.audit import AuditEvent
from fintrack.services.storage.interface import (
    TABLE_MODELS,
    AuditStorageInterface,
    DuplicateError,
    FinanceStorage,
    NotFoundError,
    RecordT,
    TableStorageInterface,
    matches_filters,
)


class InMemoryTableStorage(TableStorageInterface[RecordT]):
    """Dict-backed table."""

    def __init__(self, table_name: str, model: type[RecordT]):
        self.table_name = table_name
        self.model = model
        self._rows: dict[UUID, RecordT] = {}

    async def insert(self, record: RecordT) -> RecordT:
        if record.id in self._rows:
            raise DuplicateError(f"{self.table_name} record already exists: {record.id}")
        self._rows[record.id] = record.model_copy(deep=True)
        return record

    async def insert_many(self, records: list[RecordT]) -> list[RecordT]:
        ids = [record.id for record in records]
        if len(set(ids)) != len(ids) or any(i in self._rows for i in ids):
            raise DuplicateError(f"Batch contains duplicate {self.table_name} ids")
        for record in records:
            self._rows[record.id] = record.model_copy(deep=True)
        return records

    async def get(self, record_id: UUID) -> Optional[RecordT]:
        record = self._rows.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def update(self, record: RecordT) -> RecordT:
        if record.id not in self._rows:
            raise NotFoundError(f"{self.table_name} record not found: {record.id}")
        self._rows[record.id] = record.model_copy(deep=True)
        return record

    async def delete(self, record_id: UUID) -> bool:
        return self._rows.pop(record_id, None) is not None

    async def list(self, **filters: Any) -> list[RecordT]:
        return [
            record.model_copy(deep=True)
            for record in self._rows.values()
            if matches_filters(record, filters)
        ]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def append_events(self, events: list[AuditEvent]) -> bool:
        self._events.extend(e.model_copy(deep=True) for e in events)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_record(
        self,
        table_name: str,
        record_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.table_name == table_name and e.record_id == record_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        user_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if user_id is None or e.user_id == user_id
        ]
        # Stable sort keeps append order for equal timestamps; reverse for newest first
        events = list(reversed(events))
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


def create_memory_storage() -> FinanceStorage:
    """Fresh, empty in-memory tables."""
    tables = {
        name: InMemoryTableStorage(name, model)
        for name, model in TABLE_MODELS.items()
    }
    return FinanceStorage(audit=InMemoryAuditStorage(), **tables)
