"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the default backend; an in-memory backend serves tests
and demos. Business logic only ever sees the interfaces.
"""

from fintrack.services.storage.interface import (
    TABLE_MODELS,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    FinanceStorage,
    NotFoundError,
    StorageError,
    TableStorageInterface,
)
from fintrack.services.storage.in_memory import (
    InMemoryAuditStorage,
    InMemoryTableStorage,
    create_memory_storage,
)
from fintrack.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
    create_sheets_storage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "FinanceStorage",
    "TABLE_MODELS",
    "TableStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryTableStorage",
    "create_memory_storage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTableStorage",
    "create_sheets_storage",
]
