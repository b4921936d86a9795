"""
Account Service

Creates, edits and removes accounts and keeps their closing balance
in step with the transactions that reference them:

    closing_balance = opening_balance + sum(credits) - sum(debits)

Every read and write is scoped to one user. An account owned by
somebody else is indistinguishable from one that does not exist.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from fintrack.audit import AuditLogger
from fintrack.ledger.errors import DuplicateNameError
from fintrack.models.finance import Account, Transaction
from fintrack.services.storage import FinanceStorage, NotFoundError


logger = structlog.get_logger(__name__)

# Fields callers may not set directly on update
_DERIVED_FIELDS = {"id", "user_id", "closing_balance", "created_at", "updated_at"}


def compute_closing_balance(account: Account, transactions: list[Transaction]) -> Decimal:
    """Opening balance plus credits minus debits of the given transactions."""
    total = account.opening_balance
    for txn in transactions:
        if txn.account_id == account.id:
            total += txn.signed_amount
    return total.quantize(Decimal("0.01"))


class AccountService:
    """Account CRUD plus closing-balance maintenance."""

    def __init__(
        self,
        storage: FinanceStorage,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def get_account(self, user_id: UUID, account_id: UUID) -> Account:
        """
        Fetch one of the user's accounts.

        Raises:
            NotFoundError: If missing or owned by another user
        """
        account = await self._storage.accounts.get(account_id)
        if account is None or account.user_id != user_id:
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    async def list_accounts(
        self,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[Account]:
        """The user's accounts ordered by name."""
        accounts = await self._storage.accounts.list(user_id=user_id)
        if not include_inactive:
            accounts = [a for a in accounts if a.is_active]
        return sorted(accounts, key=lambda a: a.name.lower())

    async def find_by_name(self, user_id: UUID, name: str) -> Optional[Account]:
        """Case-insensitive lookup among all of the user's accounts."""
        wanted = name.strip().lower()
        for account in await self._storage.accounts.list(user_id=user_id):
            if account.name.lower() == wanted:
                return account
        return None

    async def create_account(
        self,
        account: Account,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        """
        Save a new account.

        The closing balance starts equal to the opening balance.

        Raises:
            DuplicateNameError: If the user already has an account of that name
        """
        if await self.find_by_name(account.user_id, account.name):
            raise DuplicateNameError("accounts", account.name)

        account.closing_balance = account.opening_balance
        await self._storage.accounts.insert(account)
        logger.info("account_created", account_id=str(account.id), account_type=account.account_type.value)

        if self._audit_logger:
            await self._audit_logger.log_record_inserted(
                user_id=account.user_id,
                table_name="accounts",
                record_id=account.id,
                new_data=account.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
        return account

    async def create_many(
        self,
        accounts: list[Account],
        correlation_id: Optional[UUID] = None,
    ) -> list[Account]:
        """
        Save several new accounts in one storage call.

        Name clashes are the caller's job to filter out beforehand.
        """
        for account in accounts:
            account.closing_balance = account.opening_balance
        await self._storage.accounts.insert_many(accounts)

        if self._audit_logger:
            await self._audit_logger.log_records_inserted("accounts", accounts, correlation_id)
        return accounts

    async def update_account(
        self,
        user_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
        **changes: Any,
    ) -> Account:
        """
        Change fields of an account.

        Derived fields (ids, closing balance, timestamps) are ignored.
        A new opening balance moves the closing balance with it.
        """
        current = await self.get_account(user_id, account_id)
        changes = {k: v for k, v in changes.items() if k not in _DERIVED_FIELDS}

        new_name = changes.get("name")
        if new_name and new_name.strip().lower() != current.name.lower():
            if await self.find_by_name(user_id, new_name):
                raise DuplicateNameError("accounts", new_name)

        old_data = current.model_dump(mode="json")
        updated = Account.model_validate({
            **current.model_dump(),
            **changes,
            "updated_at": datetime.utcnow(),
        })
        transactions = await self._storage.transactions.list(account_id=account_id)
        updated.closing_balance = compute_closing_balance(updated, transactions)

        await self._storage.accounts.update(updated)
        if self._audit_logger:
            await self._audit_logger.log_record_updated(
                user_id=user_id,
                table_name="accounts",
                record_id=account_id,
                old_data=old_data,
                new_data=updated.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
        return updated

    async def delete_account(
        self,
        user_id: UUID,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete an account.

        Its transactions are kept and unlinked (account_id cleared).
        """
        account = await self.get_account(user_id, account_id)

        for txn in await self._storage.transactions.list(account_id=account_id):
            old_data = txn.model_dump(mode="json")
            txn.account_id = None
            txn.updated_at = datetime.utcnow()
            await self._storage.transactions.update(txn)
            if self._audit_logger:
                await self._audit_logger.log_record_updated(
                    user_id=user_id,
                    table_name="transactions",
                    record_id=txn.id,
                    old_data=old_data,
                    new_data=txn.model_dump(mode="json"),
                    correlation_id=correlation_id,
                )

        deleted = await self._storage.accounts.delete(account_id)
        logger.info("account_deleted", account_id=str(account_id))
        if deleted and self._audit_logger:
            await self._audit_logger.log_record_deleted(
                user_id=user_id,
                table_name="accounts",
                record_id=account_id,
                old_data=account.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
        return deleted

    async def recompute_closing_balance(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Account]:
        """
        Bring an account's closing balance in line with its transactions.

        Returns the account, or None if it no longer exists.
        """
        account = await self._storage.accounts.get(account_id)
        if account is None:
            return None

        transactions = await self._storage.transactions.list(account_id=account_id)
        new_balance = compute_closing_balance(account, transactions)
        if new_balance == account.closing_balance:
            return account

        old_balance = account.closing_balance
        account.closing_balance = new_balance
        account.updated_at = datetime.utcnow()
        await self._storage.accounts.update(account)

        logger.debug(
            "closing_balance_recomputed",
            account_id=str(account_id),
            old_balance=str(old_balance),
            new_balance=str(new_balance),
        )
        if self._audit_logger:
            await self._audit_logger.log_balance_recomputed(
                user_id=account.user_id,
                account_id=account_id,
                old_balance=str(old_balance),
                new_balance=str(new_balance),
                correlation_id=correlation_id,
            )
        return account

    async def total_balance(self, user_id: UUID) -> Decimal:
        """Sum of closing balances across active accounts."""
        accounts = await self.list_accounts(user_id)
        return sum((a.closing_balance for a in accounts), Decimal("0"))
