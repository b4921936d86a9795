"""
Budget Service

One budget per (user, category, month, year). Spending against a
budget is the sum of Debit transactions carrying that category_id and
dated inside the calendar month.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from fintrack.audit import AuditLogger
from fintrack.ledger.catalog import CatalogService
from fintrack.ledger.errors import BudgetError
from fintrack.models.finance import (
    UNCATEGORIZED_COLOR,
    Budget,
    BudgetOverview,
    BudgetProgress,
    BudgetStatus,
    TransactionType,
)
from fintrack.queries.executor import month_bounds
from fintrack.services.storage import FinanceStorage, NotFoundError


logger = structlog.get_logger(__name__)


def budget_status(progress_percent: float, warning_percent: float = 80.0) -> BudgetStatus:
    """Over past 100%, warning past the warning threshold, otherwise ok."""
    if progress_percent > 100:
        return BudgetStatus.OVER
    if progress_percent > warning_percent:
        return BudgetStatus.WARNING
    return BudgetStatus.OK


class BudgetService:
    """Monthly category budgets and their progress."""

    def __init__(
        self,
        storage: FinanceStorage,
        catalog: CatalogService,
        audit_logger: Optional[AuditLogger] = None,
        warning_percent: float = 80.0,
    ):
        self._storage = storage
        self._catalog = catalog
        self._audit_logger = audit_logger
        self._warning_percent = warning_percent

    async def list_budgets(self, user_id: UUID, month: int, year: int) -> list[Budget]:
        return await self._storage.budgets.list(user_id=user_id, month=month, year=year)

    async def set_budget(
        self,
        user_id: UUID,
        category_id: UUID,
        amount: Decimal,
        month: int,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Create the budget, or replace the amount of the existing one.

        Raises:
            BudgetError: If the category is not visible to the user
        """
        try:
            await self._catalog.get_category(user_id, category_id)
        except NotFoundError as e:
            raise BudgetError(f"Cannot budget for unknown category {category_id}") from e

        existing = await self._storage.budgets.find_one(
            user_id=user_id,
            category_id=category_id,
            month=month,
            year=year,
        )

        if existing is None:
            budget = Budget(
                user_id=user_id,
                category_id=category_id,
                amount=amount,
                month=month,
                year=year,
            )
            await self._storage.budgets.insert(budget)
            logger.info("budget_created", budget_id=str(budget.id), month=month, year=year)
            if self._audit_logger:
                await self._audit_logger.log_record_inserted(
                    user_id=user_id,
                    table_name="budgets",
                    record_id=budget.id,
                    new_data=budget.model_dump(mode="json"),
                    correlation_id=correlation_id,
                )
            return budget

        old_data = existing.model_dump(mode="json")
        budget = Budget.model_validate({**existing.model_dump(), "amount": amount})
        await self._storage.budgets.update(budget)
        logger.info("budget_updated", budget_id=str(budget.id), month=month, year=year)
        if self._audit_logger:
            await self._audit_logger.log_record_updated(
                user_id=user_id,
                table_name="budgets",
                record_id=budget.id,
                old_data=old_data,
                new_data=budget.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
        return budget

    async def delete_budget(
        self,
        user_id: UUID,
        budget_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        budget = await self._storage.budgets.get(budget_id)
        if budget is None or budget.user_id != user_id:
            raise NotFoundError(f"Budget not found: {budget_id}")

        deleted = await self._storage.budgets.delete(budget_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_record_deleted(
                user_id=user_id,
                table_name="budgets",
                record_id=budget_id,
                old_data=budget.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
        return deleted

    async def budgets_with_spending(
        self,
        user_id: UUID,
        month: int,
        year: int,
    ) -> BudgetOverview:
        """Every budget of the month with its spending, status and totals."""
        budgets = await self.list_budgets(user_id, month, year)
        if not budgets:
            return BudgetOverview(month=month, year=year)

        start, end = month_bounds(month, year)
        spent_by_category: dict[UUID, Decimal] = {}
        for txn in await self._storage.transactions.list(
            user_id=user_id,
            transaction_type=TransactionType.DEBIT,
        ):
            if txn.category_id is None or not (start <= txn.transaction_date <= end):
                continue
            spent_by_category[txn.category_id] = (
                spent_by_category.get(txn.category_id, Decimal("0")) + txn.amount
            )

        categories = {c.id: c for c in await self._catalog.list_categories(user_id)}

        progress = []
        for budget in budgets:
            category = categories.get(budget.category_id)
            spent = spent_by_category.get(budget.category_id, Decimal("0"))
            percent = float(spent / budget.amount * 100)
            progress.append(BudgetProgress(
                budget_id=budget.id,
                category_id=budget.category_id,
                category_name=category.name if category else "Unknown",
                category_color=(category.color if category and category.color else UNCATEGORIZED_COLOR),
                amount=budget.amount,
                spent=spent,
                month=month,
                year=year,
                status=budget_status(percent, self._warning_percent),
            ))

        progress.sort(key=lambda p: p.category_name.lower())
        total_budget = sum((p.amount for p in progress), Decimal("0"))
        total_spent = sum((p.spent for p in progress), Decimal("0"))
        overall = float(total_spent / total_budget * 100) if total_budget > 0 else 0.0

        return BudgetOverview(
            month=month,
            year=year,
            budgets=progress,
            total_budget=total_budget,
            total_spent=total_spent,
            status=budget_status(overall, self._warning_percent),
        )
