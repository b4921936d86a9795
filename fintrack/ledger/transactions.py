"""
Transaction Service

Every write keeps the linked account balances correct:
- insert/delete: the transaction's account is recomputed
- update: the new account is recomputed, and the old one too when the
  transaction moved between accounts

and leaves one audit event with the row before and after.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog

from fintrack.audit import AuditLogger
from fintrack.ledger.accounts import AccountService
from fintrack.models.finance import Transaction
from fintrack.queries.executor import TransactionFilter, TransactionQueryExecutor
from fintrack.services.storage import FinanceStorage, NotFoundError


logger = structlog.get_logger(__name__)

_DERIVED_FIELDS = {"id", "user_id", "day", "created_at", "updated_at"}


class TransactionService:
    """Transaction CRUD with balance upkeep and auditing."""

    def __init__(
        self,
        storage: FinanceStorage,
        accounts: AccountService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._accounts = accounts
        self._audit_logger = audit_logger
        self._executor = TransactionQueryExecutor(storage)

    async def get_transaction(self, user_id: UUID, transaction_id: UUID) -> Transaction:
        """
        Raises:
            NotFoundError: If missing or owned by another user
        """
        txn = await self._storage.transactions.get(transaction_id)
        if txn is None or txn.user_id != user_id:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return txn

    async def list_transactions(
        self,
        user_id: UUID,
        flt: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """The user's transactions matching the filter, newest first."""
        result = await self._executor.execute(user_id, flt)
        return result.transactions

    async def create_transaction(
        self,
        txn: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Save a transaction and update its account's closing balance.

        Raises:
            NotFoundError: If account_id is not one of the user's accounts
        """
        if txn.account_id is not None:
            await self._accounts.get_account(txn.user_id, txn.account_id)

        await self._storage.transactions.insert(txn)
        logger.info(
            "transaction_created",
            transaction_id=str(txn.id),
            transaction_type=txn.transaction_type.value,
        )

        if self._audit_logger:
            await self._audit_logger.log_record_inserted(
                user_id=txn.user_id,
                table_name="transactions",
                record_id=txn.id,
                new_data=txn.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
        if txn.account_id is not None:
            await self._accounts.recompute_closing_balance(txn.account_id, correlation_id)
        return txn

    async def insert_many(
        self,
        transactions: list[Transaction],
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Save a batch in ONE storage call, then recompute each touched account once.

        Account ids are trusted here; the importer resolved them by name
        among the user's own accounts.
        """
        if not transactions:
            return []

        await self._storage.transactions.insert_many(transactions)
        logger.info("transactions_batch_inserted", count=len(transactions))

        if self._audit_logger:
            await self._audit_logger.log_records_inserted(
                "transactions", transactions, correlation_id,
            )

        touched = {t.account_id for t in transactions if t.account_id is not None}
        for account_id in touched:
            await self._accounts.recompute_closing_balance(account_id, correlation_id)
        return transactions

    async def update_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
        **changes: Any,
    ) -> Transaction:
        """Apply field changes; the weekday is re-derived from the date."""
        current = await self.get_transaction(user_id, transaction_id)
        changes = {k: v for k, v in changes.items() if k not in _DERIVED_FIELDS}

        new_account_id = changes.get("account_id", current.account_id)
        if new_account_id is not None and new_account_id != current.account_id:
            await self._accounts.get_account(user_id, new_account_id)

        old_data = current.model_dump(mode="json")
        updated = Transaction.model_validate({
            **current.model_dump(),
            **changes,
            "updated_at": datetime.utcnow(),
        })
        await self._storage.transactions.update(updated)

        if self._audit_logger:
            await self._audit_logger.log_record_updated(
                user_id=user_id,
                table_name="transactions",
                record_id=transaction_id,
                old_data=old_data,
                new_data=updated.model_dump(mode="json"),
                correlation_id=correlation_id,
            )

        if updated.account_id is not None:
            await self._accounts.recompute_closing_balance(updated.account_id, correlation_id)
        if current.account_id is not None and current.account_id != updated.account_id:
            await self._accounts.recompute_closing_balance(current.account_id, correlation_id)
        return updated

    async def delete_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        txn = await self.get_transaction(user_id, transaction_id)
        deleted = await self._storage.transactions.delete(transaction_id)
        if not deleted:
            return False

        logger.info("transaction_deleted", transaction_id=str(transaction_id))
        if self._audit_logger:
            await self._audit_logger.log_record_deleted(
                user_id=user_id,
                table_name="transactions",
                record_id=transaction_id,
                old_data=txn.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
        if txn.account_id is not None:
            await self._accounts.recompute_closing_balance(txn.account_id, correlation_id)
        return True
