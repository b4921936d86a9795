"""
Ledger services.

Application-level rules over the raw tables: ownership scoping,
closing-balance upkeep, cascades on delete and per-row auditing.
"""

from fintrack.ledger.accounts import AccountService, compute_closing_balance
from fintrack.ledger.budgets import BudgetService, budget_status
from fintrack.ledger.catalog import CatalogService
from fintrack.ledger.errors import (
    BudgetError,
    DuplicateNameError,
    LedgerError,
    OwnershipError,
)
from fintrack.ledger.transactions import TransactionService

__all__ = [
    "AccountService",
    "BudgetService",
    "CatalogService",
    "TransactionService",
    "budget_status",
    "compute_closing_balance",
    # Exceptions
    "BudgetError",
    "DuplicateNameError",
    "LedgerError",
    "OwnershipError",
]
