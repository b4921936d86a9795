"""Read-side queries: transaction filtering and the dashboard."""

from fintrack.queries.executor import (
    QueryExecutionError,
    TransactionFilter,
    TransactionQueryExecutor,
    TransactionQueryResult,
)
from fintrack.queries.dashboard import (
    CategorySpend,
    DashboardBuilder,
    DashboardSummary,
    MonthlyCashflow,
)

__all__ = [
    "CategorySpend",
    "DashboardBuilder",
    "DashboardSummary",
    "MonthlyCashflow",
    "QueryExecutionError",
    "TransactionFilter",
    "TransactionQueryExecutor",
    "TransactionQueryResult",
]
