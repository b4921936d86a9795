"""
Abstract Storage Interface

We define an abstract interface for storage operations.
This allows us to:
1. Keep Google Sheets today and move to a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every table offers the same handful of operations over one Pydantic
model; anything richer (ownership rules, balances, budgets) lives in
the ledger services on top.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from fintrack.models.audit import AuditEvent
from fintrack.models.finance import (
    Account,
    Budget,
    Category,
    Subcategory,
    Tag,
    Transaction,
    TransactionGroup,
)


RecordT = TypeVar("RecordT", bound=BaseModel)


# Logical table name -> record model
TABLE_MODELS: dict[str, type[BaseModel]] = {
    "accounts": Account,
    "categories": Category,
    "subcategories": Subcategory,
    "tags": Tag,
    "groups": TransactionGroup,
    "transactions": Transaction,
    "budgets": Budget,
}


def matches_filters(record: BaseModel, filters: dict[str, Any]) -> bool:
    """
    Equality match of a record against field filters.

    Filters whose value is None are ignored, so callers can pass
    optional criteria straight through.
    """
    for field_name, expected in filters.items():
        if expected is None:
            continue
        if getattr(record, field_name) != expected:
            return False
    return True


class TableStorageInterface(ABC, Generic[RecordT]):
    """
    Abstract interface for one table of records.

    Any storage implementation (Google Sheets, in-memory, PostgreSQL, etc.)
    must implement these methods. Records are identified by their `id`.
    Returned records are copies: mutating them changes nothing until
    they are passed back to update().
    """

    table_name: str
    model: type[RecordT]

    @abstractmethod
    async def insert(self, record: RecordT) -> RecordT:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def insert_many(self, records: list[RecordT]) -> list[RecordT]:
        """
        Insert several records in ONE backend call.

        Either every record is written or the call raises and
        none should be considered written.
        """
        pass

    @abstractmethod
    async def get(self, record_id: UUID) -> Optional[RecordT]:
        """Retrieve a record by id, None if it does not exist."""
        pass

    @abstractmethod
    async def update(self, record: RecordT) -> RecordT:
        """
        Replace an existing record.

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, record_id: UUID) -> bool:
        """Delete a record. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def list(self, **filters: Any) -> list[RecordT]:
        """
        List records in insertion order.

        Keyword filters are equality matches on model fields;
        None-valued filters are ignored.
        """
        pass

    async def find_one(self, **filters: Any) -> Optional[RecordT]:
        """First record matching the filters, if any."""
        records = await self.list(**filters)
        return records[0] if records else None


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    async def append_events(self, events: list[AuditEvent]) -> bool:
        """Append several events; backends override this with one write."""
        results = [await self.append_event(event) for event in events]
        return all(results)

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation id, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_record(
        self,
        table_name: str,
        record_id: UUID,
    ) -> list[AuditEvent]:
        """Every event about one record, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        user_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events (newest first), optionally for one user."""
        pass


class FinanceStorage:
    """
    The full set of tables the application works with.

    Built by the storage factories; services receive the tables
    they need from here.
    """

    def __init__(
        self,
        accounts: TableStorageInterface[Account],
        categories: TableStorageInterface[Category],
        subcategories: TableStorageInterface[Subcategory],
        tags: TableStorageInterface[Tag],
        groups: TableStorageInterface[TransactionGroup],
        transactions: TableStorageInterface[Transaction],
        budgets: TableStorageInterface[Budget],
        audit: AuditStorageInterface,
    ):
        self.accounts = accounts
        self.categories = categories
        self.subcategories = subcategories
        self.tags = tags
        self.groups = groups
        self.transactions = transactions
        self.budgets = budgets
        self.audit = audit


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
