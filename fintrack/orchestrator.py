"""
Application Wiring for fintrack

Builds the storage backend and every service on top of it, so the UI
(or a script) asks for one object and gets a consistent set:

    storage -> audit logger -> ledger services -> queries / importers

All services share the same storage and the same audit logger, so a
CSV import, the balance updates it causes and its audit events land in
one place.
"""

from typing import Optional

import structlog

from fintrack.audit import AuditLogger, configure_logging
from fintrack.config import Settings, get_settings
from fintrack.imports import AccountCSVImporter, TransactionCSVImporter
from fintrack.ledger import (
    AccountService,
    BudgetService,
    CatalogService,
    TransactionService,
)
from fintrack.queries import DashboardBuilder, TransactionQueryExecutor
from fintrack.services.storage import (
    FinanceStorage,
    GoogleSheetsClient,
    create_memory_storage,
    create_sheets_storage,
)


logger = structlog.get_logger(__name__)


class FinanceApp:
    """Every service of the tracker over one storage backend."""

    def __init__(
        self,
        storage: FinanceStorage,
        settings: Settings,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        app_settings = settings.app
        self.storage = storage
        self.settings = settings
        self.sheets_client = sheets_client

        self.audit_logger = AuditLogger(storage.audit)
        self.accounts = AccountService(storage, self.audit_logger)
        self.catalog = CatalogService(storage, self.audit_logger)
        self.transactions = TransactionService(storage, self.accounts, self.audit_logger)
        self.budgets = BudgetService(
            storage,
            self.catalog,
            self.audit_logger,
            warning_percent=app_settings.budget_warning_percent,
        )
        self.queries = TransactionQueryExecutor(storage)
        self.dashboard = DashboardBuilder(
            storage,
            recent_limit=app_settings.dashboard_recent_limit,
            top_categories=app_settings.dashboard_top_categories,
            cashflow_months=app_settings.cashflow_months,
        )
        self.transaction_importer = TransactionCSVImporter(
            self.accounts,
            self.catalog,
            self.transactions,
            self.audit_logger,
            settings=app_settings,
        )
        self.account_importer = AccountCSVImporter(
            self.accounts,
            self.audit_logger,
            settings=app_settings,
        )

    async def initialize(self) -> None:
        """Seed built-in categories; safe to call on every start."""
        await self.catalog.ensure_system_categories()


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[FinanceStorage] = None,
) -> FinanceApp:
    """
    Factory function to create all application components.

    Args:
        settings: Defaults to the cached environment settings.
        storage: Use this backend instead of the configured one
                 (tests pass an in-memory storage).

    A "sheets" backend that cannot be reached falls back to in-memory
    storage with a warning, so the UI still starts.
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    if storage is not None:
        return FinanceApp(storage, settings)

    if settings.app.storage_backend == "memory":
        return FinanceApp(create_memory_storage(), settings)

    try:
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        sheets_client.connect()
        return FinanceApp(create_sheets_storage(sheets_client), settings, sheets_client)
    except Exception as e:
        logger.warning("sheets_storage_unavailable", error=str(e), fallback="memory")
        return FinanceApp(create_memory_storage(), settings)
