"""
Transaction Query Execution

Filters are plain data (TransactionFilter); this engine applies them
to the user's stored transactions. Results are always real rows from
storage, newest first, with running totals for the matched set.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fintrack.models.finance import Transaction, TransactionType
from fintrack.services.storage import FinanceStorage


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class TransactionFilter(BaseModel):
    """Criteria for the transactions list. Unset criteria match everything."""
    model_config = ConfigDict(str_strip_whitespace=True)

    search: Optional[str] = Field(
        default=None,
        description="Substring of description, party, bank remarks or category"
    )
    transaction_type: Optional[TransactionType] = None
    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    tag_id: Optional[UUID] = None
    group_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode='after')
    def validate_range(self) -> 'TransactionFilter':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self


class TransactionQueryResult(BaseModel):
    transactions: list[Transaction] = Field(default_factory=list)
    total_credit: Decimal = Decimal("0")
    total_debit: Decimal = Decimal("0")
    query_description: str = ""

    @property
    def result_count(self) -> int:
        return len(self.transactions)

    @property
    def net(self) -> Decimal:
        return self.total_credit - self.total_debit


def matches_transaction(
    txn: Transaction,
    flt: TransactionFilter,
    category_names: Optional[dict[UUID, str]] = None,
) -> bool:
    """True if the transaction satisfies every set criterion."""
    if flt.transaction_type and txn.transaction_type != flt.transaction_type:
        return False
    if flt.category_id and txn.category_id != flt.category_id:
        return False
    if flt.account_id and txn.account_id != flt.account_id:
        return False
    if flt.tag_id and txn.tag_id != flt.tag_id:
        return False
    if flt.group_id and txn.group_id != flt.group_id:
        return False
    # Date range is inclusive on both ends
    if flt.date_from and txn.transaction_date < flt.date_from:
        return False
    if flt.date_to and txn.transaction_date > flt.date_to:
        return False

    if flt.search:
        needle = flt.search.lower()
        haystack = [txn.description, txn.party, txn.bank_remarks, txn.category_name]
        if category_names and txn.category_id in category_names:
            haystack.append(category_names[txn.category_id])
        if not any(needle in text.lower() for text in haystack if text):
            return False
    return True


def month_bounds(month: int, year: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def newest_first(transactions: list[Transaction]) -> list[Transaction]:
    return sorted(
        transactions,
        key=lambda t: (t.transaction_date, t.created_at),
        reverse=True,
    )


class TransactionQueryExecutor:
    """
    Runs TransactionFilters against transaction storage.

    GUARANTEES:
    - Only the requesting user's transactions are returned
    - Ordering is newest first (by date, then creation time)
    """

    def __init__(self, storage: FinanceStorage):
        self._storage = storage

    async def execute(self, user_id: UUID, flt: Optional[TransactionFilter] = None) -> TransactionQueryResult:
        flt = flt or TransactionFilter()
        try:
            transactions = await self._storage.transactions.list(user_id=user_id)
            category_names: dict[UUID, str] = {}
            if flt.search:
                category_names = {
                    c.id: c.name for c in await self._storage.categories.list()
                }
        except Exception as e:
            raise QueryExecutionError(f"Could not load transactions: {e}") from e

        matched = newest_first([
            t for t in transactions
            if matches_transaction(t, flt, category_names)
        ])
        if flt.limit:
            matched = matched[:flt.limit]

        total_credit = sum(
            (t.amount for t in matched if t.transaction_type == TransactionType.CREDIT),
            Decimal("0"),
        )
        total_debit = sum(
            (t.amount for t in matched if t.transaction_type == TransactionType.DEBIT),
            Decimal("0"),
        )
        return TransactionQueryResult(
            transactions=matched,
            total_credit=total_credit,
            total_debit=total_debit,
            query_description=describe_filter(flt),
        )


def describe_filter(flt: TransactionFilter) -> str:
    """Short human-readable summary of a filter, for list headers."""
    parts = ["Transactions"]
    if flt.transaction_type:
        parts.append(f"type: {flt.transaction_type.value}")
    if flt.search:
        parts.append(f"matching '{flt.search}'")
    date_str = _date_range_str(flt.date_from, flt.date_to)
    if date_str:
        parts.append(date_str)
    return " | ".join(parts)


def _date_range_str(date_from: Optional[date], date_to: Optional[date]) -> str:
    if date_from and date_to:
        if date_from == date_to:
            return f"on {date_from.strftime('%d %b %Y')}"
        elif date_from.month == date_to.month and date_from.year == date_to.year:
            return f"in {date_from.strftime('%B %Y')}"
        return f"from {date_from.strftime('%d %b %Y')} to {date_to.strftime('%d %b %Y')}"
    elif date_from:
        return f"from {date_from.strftime('%d %b %Y')}"
    elif date_to:
        return f"until {date_to.strftime('%d %b %Y')}"
    return ""
