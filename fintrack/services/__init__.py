"""Services package."""

from fintrack.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    FinanceStorage,
    GoogleSheetsClient,
    NotFoundError,
    StorageError,
    TableStorageInterface,
    create_memory_storage,
    create_sheets_storage,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "FinanceStorage",
    "GoogleSheetsClient",
    "NotFoundError",
    "StorageError",
    "TableStorageInterface",
    "create_memory_storage",
    "create_sheets_storage",
]
