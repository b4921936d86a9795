"""
Transaction CSV Import

Two steps, so the user can look before anything is written:

1. parse()  - read the file, validate every row, build draft
              Transaction records, report unmatched account names
2. commit() - resolve names to ids (accounts, categories,
              subcategories, tags, groups) and insert every valid row
              in ONE storage call

Invalid rows are never written and never "fixed"; they are reported
with their messages so the user can correct the file.
"""

import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from fintrack.audit import AuditLogger
from fintrack.config import AppSettings, get_settings
from fintrack.imports.csv_reader import read_upload
from fintrack.imports.errors import NoValidRowsError
from fintrack.imports.preview import (
    ImportPreview,
    ImportResult,
    UnmatchedAccount,
    issues_from_validation_error,
)
from fintrack.ledger import AccountService, CatalogService, TransactionService
from fintrack.models.finance import (
    Account,
    AccountType,
    Category,
    RowValidation,
    Subcategory,
    Tag,
    Transaction,
    TransactionGroup,
    TransactionMode,
    TransactionNature,
    TransactionType,
)


logger = structlog.get_logger(__name__)


# Normalized header -> Transaction field
TRANSACTION_HEADER_ALIASES: dict[str, str] = {
    "txnid": "txn_id",
    "txndate": "transaction_date",
    "transactiondate": "transaction_date",
    "date": "transaction_date",
    "txnday": "day",
    "bankremarks": "bank_remarks",
    "amount": "amount",
    "currency": "currency",
    "txntype": "transaction_type",
    "transactiontype": "transaction_type",
    "type": "transaction_type",
    "accountid": "account_name",
    "accountname": "account_name",
    "account": "account_name",
    "accounttype": "account_type",
    "relatedtxn": "related_txn",
    "txndescription": "description",
    "description": "description",
    "partyname": "party",
    "party": "party",
    "txnmode": "transaction_mode",
    "transactionmode": "transaction_mode",
    "mode": "transaction_mode",
    "txnnature": "transaction_nature",
    "transactionnature": "transaction_nature",
    "nature": "transaction_nature",
    "txncategory": "category_name",
    "categoryname": "category_name",
    "category": "category_name",
    "txnsubcategory": "subcategory_name",
    "subcategoryname": "subcategory_name",
    "subcategory": "subcategory_name",
    "txntag": "tag",
    "tag": "tag",
    "txngroup": "group_name",
    "groupname": "group_name",
    "group": "group_name",
}

SAMPLE_TRANSACTIONS_CSV = """txnID,txnDate,bankRemarks,amount,currency,txnType,accountID,txnDescription,partyName,txnMode,txnNature,txnCategory,txnTag,txnGroup
,2024-01-15,UPI/123456789,1500.00,INR,Debit,HDFC Savings,Grocery shopping,BigMart,UPI,Purchase,Food & Dining,groceries,
,2024-01-16,NEFT/SALARY/JAN,50000.00,INR,Credit,HDFC Savings,Monthly salary,Acme Corp,NEFT,Income,Income,,
,2024-01-17,AUTOPAY/NETFLIX,299.00,INR,Debit,ICICI Credit Card,Netflix subscription,Netflix,Card,Charge,Entertainment,subscriptions,
"""

_DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_VALID_TYPES = {t.value for t in TransactionType}
_VALID_MODES = {m.value for m in TransactionMode}
_VALID_NATURES = {n.value for n in TransactionNature}
_CENT = Decimal("0.01")


class ParsedTransactionRow(RowValidation):
    """One CSV row after validation, with the names still unresolved."""

    account_name: Optional[str] = None
    category_name: Optional[str] = None
    subcategory_name: Optional[str] = None
    tag: Optional[str] = None
    group_name: Optional[str] = None
    transaction: Optional[Transaction] = None


def parse_amount(text: str) -> Optional[Decimal]:
    """Decimal from text with thousands separators; None if not a finite number."""
    cleaned = text.replace(",", "").strip()
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
        if not amount.is_finite():
            return None
        return amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except ArithmeticError:
        # InvalidOperation: malformed, or too many digits to hold at cent precision
        return None


def parse_iso_date(text: str) -> Optional[date]:
    """date from strict YYYY-MM-DD text, None if malformed or not a real day."""
    if not _DATE_FORMAT.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def validate_transaction_row(
    row_number: int,
    values: dict[str, str],
    user_id: UUID,
    default_currency: str = "INR",
) -> ParsedTransactionRow:
    """
    Check one row and, if it passes, build its draft Transaction.

    Error messages (a row can collect several):
        Date is required
        Valid amount is required
        Amount must be greater than zero
        Type must be Debit or Credit
        Invalid mode: <value>
        Invalid nature: <value>
        Date must be YYYY-MM-DD format
    """
    def text(key: str) -> Optional[str]:
        return values.get(key) or None

    row = ParsedTransactionRow(
        row_number=row_number,
        account_name=text("account_name"),
        category_name=text("category_name"),
        subcategory_name=text("subcategory_name"),
        tag=text("tag"),
        group_name=text("group_name"),
    )

    raw_date = values.get("transaction_date", "")
    if not raw_date:
        row.add_error("transaction_date", "Date is required", "missing")

    amount = parse_amount(values.get("amount", ""))
    if amount is None:
        row.add_error("amount", "Valid amount is required", "missing")
    elif amount <= 0:
        row.add_error("amount", "Amount must be greater than zero", "invalid_value")

    raw_type = values.get("transaction_type", "")
    if raw_type not in _VALID_TYPES:
        row.add_error("transaction_type", "Type must be Debit or Credit", "invalid_value")

    raw_mode = values.get("transaction_mode", "")
    if raw_mode and raw_mode not in _VALID_MODES:
        row.add_error("transaction_mode", f"Invalid mode: {raw_mode}", "invalid_value")

    raw_nature = values.get("transaction_nature", "")
    if raw_nature and raw_nature not in _VALID_NATURES:
        row.add_error("transaction_nature", f"Invalid nature: {raw_nature}", "invalid_value")

    txn_date = parse_iso_date(raw_date) if raw_date else None
    if raw_date and txn_date is None:
        row.add_error("transaction_date", "Date must be YYYY-MM-DD format")

    if not row.is_valid:
        return row

    try:
        row.transaction = Transaction(
            user_id=user_id,
            transaction_date=txn_date,
            amount=amount,
            currency=values.get("currency") or default_currency,
            transaction_type=TransactionType(raw_type),
            description=text("description"),
            party=text("party"),
            bank_remarks=text("bank_remarks"),
            transaction_mode=TransactionMode(raw_mode) if raw_mode else None,
            transaction_nature=TransactionNature(raw_nature) if raw_nature else None,
            category_name=row.category_name,
            subcategory_name=row.subcategory_name,
            tag=row.tag,
            group_name=row.group_name,
        )
    except ValidationError as e:
        issues_from_validation_error(row, e)
    return row


def find_unmatched_accounts(
    rows: list[ParsedTransactionRow],
    accounts: list[Account],
) -> list[UnmatchedAccount]:
    """
    Account names used by rows that match no existing account.

    Matching ignores case; each name is reported once, spelled as it
    first appeared, with the number of rows using it.
    """
    known = {a.name.lower() for a in accounts}
    unmatched: dict[str, UnmatchedAccount] = {}
    for row in rows:
        if not row.account_name:
            continue
        key = row.account_name.lower()
        if key in known:
            continue
        if key not in unmatched:
            unmatched[key] = UnmatchedAccount(name=row.account_name, count=0)
        unmatched[key].count += 1
    return list(unmatched.values())


class TransactionCSVImporter:
    """Reads transaction CSVs and writes their valid rows."""

    table_name = "transactions"

    def __init__(
        self,
        accounts: AccountService,
        catalog: CatalogService,
        transactions: TransactionService,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._accounts = accounts
        self._catalog = catalog
        self._transactions = transactions
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    async def parse(
        self,
        user_id: UUID,
        filename: str,
        raw: bytes,
        correlation_id: Optional[UUID] = None,
    ) -> ImportPreview:
        """
        Validate an uploaded file without writing anything.

        Raises:
            InvalidFileError: Wrong extension or undecodable content
            FileTooLargeError: Over the size or row limit
        """
        correlation_id = correlation_id or uuid4()
        raw_rows = read_upload(
            filename,
            raw,
            TRANSACTION_HEADER_ALIASES,
            max_bytes=self._settings.max_upload_size_bytes,
            max_rows=self._settings.max_import_rows,
        )

        rows = [
            validate_transaction_row(
                row_number,
                values,
                user_id,
                default_currency=self._settings.default_currency,
            )
            for row_number, values in raw_rows
        ]
        accounts = await self._accounts.list_accounts(user_id, include_inactive=True)

        preview = ImportPreview(
            correlation_id=correlation_id,
            user_id=user_id,
            filename=filename,
            table_name=self.table_name,
            rows=rows,
            unmatched_accounts=find_unmatched_accounts(rows, accounts),
            page_size=self._settings.import_error_page_size,
        )

        logger.info(
            "csv_import_parsed",
            filename=filename,
            valid_count=preview.valid_count,
            invalid_count=preview.invalid_count,
            unmatched_accounts=len(preview.unmatched_accounts),
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_import_parsed(
                user_id=user_id,
                table_name=self.table_name,
                filename=filename,
                valid_count=preview.valid_count,
                invalid_count=preview.invalid_count,
                correlation_id=correlation_id,
            )
        return preview

    async def commit(
        self,
        preview: ImportPreview,
        create_missing_accounts: bool = False,
    ) -> ImportResult:
        """
        Write every valid row of a preview.

        Without create_missing_accounts, rows naming an unknown account
        are imported with no account linked.

        Raises:
            NoValidRowsError: If the preview has no valid rows
            StorageError: If the batch insert fails (after auditing it)
        """
        user_id = preview.user_id
        correlation_id = preview.correlation_id
        valid_rows: list[ParsedTransactionRow] = preview.valid_rows
        if not valid_rows:
            raise NoValidRowsError("No valid transactions to import")

        try:
            result = ImportResult(
                correlation_id=correlation_id,
                imported_count=0,
                skipped_count=preview.invalid_count,
            )
            account_ids = await self._resolve_accounts(
                user_id, valid_rows, create_missing_accounts, correlation_id, result,
            )
            categories, subcategories = await self._catalog.category_lookup(user_id)
            tags, result.created_tags = await self._catalog.ensure_tags(
                user_id, [r.tag for r in valid_rows if r.tag], correlation_id,
            )
            groups, result.created_groups = await self._catalog.ensure_groups(
                user_id, [r.group_name for r in valid_rows if r.group_name], correlation_id,
            )
            records = [
                self._link(row, account_ids, categories, subcategories, tags, groups)
                for row in valid_rows
            ]

            await self._transactions.insert_many(records, correlation_id)
        except Exception as e:
            logger.error(
                "csv_import_failed",
                error=str(e),
                correlation_id=str(correlation_id),
            )
            if self._audit_logger:
                await self._audit_logger.log_import_failed(
                    user_id=user_id,
                    table_name=self.table_name,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        result.imported_count = len(records)
        logger.info(
            "csv_import_completed",
            imported_count=result.imported_count,
            skipped_count=result.skipped_count,
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_import_completed(
                user_id=user_id,
                table_name=self.table_name,
                imported_count=result.imported_count,
                skipped_count=result.skipped_count,
                correlation_id=correlation_id,
                details={
                    "filename": preview.filename,
                    "created_accounts": result.created_accounts,
                    "created_tags": result.created_tags,
                    "created_groups": result.created_groups,
                    "unmatched_accounts": [
                        u.name for u in preview.unmatched_accounts
                    ] if not create_missing_accounts else [],
                },
            )
        return result

    async def _resolve_accounts(
        self,
        user_id: UUID,
        rows: list[ParsedTransactionRow],
        create_missing: bool,
        correlation_id: UUID,
        result: ImportResult,
    ) -> dict[str, UUID]:
        """Lowercased account name -> account id, creating accounts if asked."""
        accounts = await self._accounts.list_accounts(user_id, include_inactive=True)
        account_ids = {a.name.lower(): a.id for a in accounts}
        if not create_missing:
            return account_ids

        for unmatched in find_unmatched_accounts(rows, accounts):
            account = await self._accounts.create_account(
                Account(
                    user_id=user_id,
                    name=unmatched.name,
                    account_type=AccountType.BANK_ACCOUNT,
                    currency=self._settings.default_currency,
                ),
                correlation_id=correlation_id,
            )
            account_ids[account.name.lower()] = account.id
            result.created_accounts.append(account.name)
            if self._audit_logger:
                await self._audit_logger.log_entity_auto_created(
                    user_id=user_id,
                    table_name="accounts",
                    record_id=account.id,
                    name=account.name,
                    correlation_id=correlation_id,
                )
        return account_ids

    def _link(
        self,
        row: ParsedTransactionRow,
        account_ids: dict[str, UUID],
        categories: dict[str, Category],
        subcategories: dict[tuple[UUID, str], Subcategory],
        tags: dict[str, Tag],
        groups: dict[str, TransactionGroup],
    ) -> Transaction:
        """The row's draft transaction with every name resolved to an id."""
        links: dict[str, Optional[UUID]] = {}

        if row.account_name:
            links["account_id"] = account_ids.get(row.account_name.lower())

        if row.category_name:
            category = categories.get(row.category_name.strip().lower())
            if category:
                links["category_id"] = category.id
                if row.subcategory_name:
                    sub = subcategories.get((category.id, row.subcategory_name.strip().lower()))
                    links["subcategory_id"] = sub.id if sub else None

        if row.tag:
            tag = tags.get(row.tag.strip().lower())
            links["tag_id"] = tag.id if tag else None

        if row.group_name:
            group = groups.get(row.group_name.strip().lower())
            links["group_id"] = group.id if group else None

        return row.transaction.model_copy(update=links)
