"""
Dashboard Summary

Numbers behind the overview page, all for one user:
- income, expenses and net cashflow of the current month
- total balance across active accounts
- the month's most recent transactions
- where the month's money went, by category
- income vs expenses for the last few months
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fintrack.models.finance import (
    UNCATEGORIZED_COLOR,
    Account,
    Transaction,
    TransactionType,
)
from fintrack.queries.executor import month_bounds, newest_first
from fintrack.services.storage import FinanceStorage


UNCATEGORIZED = "Uncategorized"


class CategorySpend(BaseModel):
    name: str
    color: str
    amount: Decimal


class MonthlyCashflow(BaseModel):
    label: str = Field(..., description="Short month name, e.g. 'Jan'")
    month: int
    year: int
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class DashboardSummary(BaseModel):
    month: int
    year: int
    month_income: Decimal = Decimal("0")
    month_expenses: Decimal = Decimal("0")
    total_balance: Decimal = Decimal("0")
    accounts: list[Account] = Field(default_factory=list)
    recent_transactions: list[Transaction] = Field(default_factory=list)
    category_breakdown: list[CategorySpend] = Field(default_factory=list)
    cashflow: list[MonthlyCashflow] = Field(default_factory=list)

    @property
    def net_cashflow(self) -> Decimal:
        return self.month_income - self.month_expenses


def shift_month(month: int, year: int, offset: int) -> tuple[int, int]:
    """(month, year) moved by offset months; negative goes back."""
    index = year * 12 + (month - 1) + offset
    return index % 12 + 1, index // 12


def sum_by_type(transactions: list[Transaction], txn_type: TransactionType) -> Decimal:
    return sum(
        (t.amount for t in transactions if t.transaction_type == txn_type),
        Decimal("0"),
    )


class DashboardBuilder:
    """Builds DashboardSummary from storage."""

    def __init__(
        self,
        storage: FinanceStorage,
        recent_limit: int = 5,
        top_categories: int = 6,
        cashflow_months: int = 6,
    ):
        self._storage = storage
        self._recent_limit = recent_limit
        self._top_categories = top_categories
        self._cashflow_months = cashflow_months

    async def summary(self, user_id: UUID, today: Optional[date] = None) -> DashboardSummary:
        today = today or date.today()
        transactions = await self._storage.transactions.list(user_id=user_id)

        start, end = month_bounds(today.month, today.year)
        this_month = newest_first([
            t for t in transactions
            if start <= t.transaction_date <= end
        ])

        accounts = sorted(
            await self._storage.accounts.list(user_id=user_id, is_active=True),
            key=lambda a: a.name.lower(),
        )

        return DashboardSummary(
            month=today.month,
            year=today.year,
            month_income=sum_by_type(this_month, TransactionType.CREDIT),
            month_expenses=sum_by_type(this_month, TransactionType.DEBIT),
            total_balance=sum((a.closing_balance for a in accounts), Decimal("0")),
            accounts=accounts,
            recent_transactions=this_month[:self._recent_limit],
            category_breakdown=await self.category_breakdown(this_month),
            cashflow=self.cashflow(transactions, today),
        )

    async def category_breakdown(self, transactions: list[Transaction]) -> list[CategorySpend]:
        """
        Debit totals per category, largest first, top N only.

        Transactions with no (or an unknown) category_id fall into
        one "Uncategorized" bucket.
        """
        categories = {c.id: c for c in await self._storage.categories.list()}

        totals: dict[str, CategorySpend] = {}
        for txn in transactions:
            if txn.transaction_type != TransactionType.DEBIT:
                continue
            category = categories.get(txn.category_id) if txn.category_id else None
            name = category.name if category else UNCATEGORIZED
            color = (category.color if category else None) or UNCATEGORIZED_COLOR

            if name not in totals:
                totals[name] = CategorySpend(name=name, color=color, amount=Decimal("0"))
            totals[name].amount += txn.amount

        ranked = sorted(totals.values(), key=lambda c: c.amount, reverse=True)
        return ranked[:self._top_categories]

    def cashflow(self, transactions: list[Transaction], today: date) -> list[MonthlyCashflow]:
        """Income and expenses per month, oldest first, ending with today's month."""
        months = []
        for offset in range(self._cashflow_months - 1, -1, -1):
            month, year = shift_month(today.month, today.year, -offset)
            start, end = month_bounds(month, year)
            in_month = [t for t in transactions if start <= t.transaction_date <= end]
            months.append(MonthlyCashflow(
                label=start.strftime("%b"),
                month=month,
                year=year,
                income=sum_by_type(in_month, TransactionType.CREDIT),
                expenses=sum_by_type(in_month, TransactionType.DEBIT),
            ))
        return months
