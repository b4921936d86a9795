"""
Data Models Package

This package contains all Pydantic models used in fintrack.
All data flowing through the system must conform to these schemas.
"""

from fintrack.models.finance import (
    Account,
    AccountType,
    Budget,
    BudgetOverview,
    BudgetProgress,
    BudgetStatus,
    CardNetwork,
    Category,
    RowValidation,
    SYSTEM_CATEGORIES,
    Subcategory,
    Tag,
    Transaction,
    TransactionGroup,
    TransactionMode,
    TransactionNature,
    TransactionType,
    UNCATEGORIZED_COLOR,
    ValidationIssue,
    build_system_categories,
)
from fintrack.models.audit import (
    AUDITED_TABLES,
    AuditAction,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountType",
    "Budget",
    "BudgetOverview",
    "BudgetProgress",
    "BudgetStatus",
    "CardNetwork",
    "Category",
    "SYSTEM_CATEGORIES",
    "Subcategory",
    "Tag",
    "Transaction",
    "TransactionGroup",
    "TransactionMode",
    "TransactionNature",
    "TransactionType",
    "UNCATEGORIZED_COLOR",
    "RowValidation",
    "ValidationIssue",
    "build_system_categories",
    # Audit models
    "AUDITED_TABLES",
    "AuditAction",
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
