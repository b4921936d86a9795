"""
Account CSV Import

Same parse-then-commit flow as transaction imports. Account types and
card networks are matched loosely ("credit", "American Express"), and
names already in use are skipped with a warning rather than failing
the row.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from fintrack.audit import AuditLogger
from fintrack.config import AppSettings, get_settings
from fintrack.imports.csv_reader import normalize_header, read_upload
from fintrack.imports.errors import NoValidRowsError
from fintrack.imports.preview import ImportPreview, ImportResult, issues_from_validation_error
from fintrack.imports.transactions import parse_amount
from fintrack.ledger import AccountService
from fintrack.models.finance import Account, AccountType, CardNetwork, RowValidation


logger = structlog.get_logger(__name__)


ACCOUNT_HEADER_ALIASES: dict[str, str] = {
    "name": "name",
    "accountname": "name",
    "accounttype": "account_type",
    "type": "account_type",
    "openingbalance": "opening_balance",
    "balance": "opening_balance",
    "currency": "currency",
    "issuername": "issuer_name",
    "issuer": "issuer_name",
    "bank": "issuer_name",
    "accountnumber": "account_number",
    "accountvariant": "account_variant",
    "variant": "account_variant",
    "cardnetwork": "card_network",
    "network": "card_network",
    "networkvariant": "network_variant",
    "creditlimit": "credit_limit",
    "limit": "credit_limit",
    "statementday": "statement_day",
    "repaymentday": "repayment_day",
    "dueday": "repayment_day",
}

# Every enum value by its normalized spelling, plus common shorthands
ACCOUNT_TYPE_SYNONYMS: dict[str, AccountType] = {
    **{normalize_header(t.value): t for t in AccountType},
    "bank": AccountType.BANK_ACCOUNT,
    "savings": AccountType.BANK_ACCOUNT,
    "credit": AccountType.CREDIT_CARD,
    "buynowpaylater": AccountType.BNPL,
}

CARD_NETWORK_SYNONYMS: dict[str, CardNetwork] = {
    **{normalize_header(n.value): n for n in CardNetwork},
    "americanexpress": CardNetwork.AMEX,
    "dinersclub": CardNetwork.DINERS,
}

SAMPLE_ACCOUNTS_CSV = """name,account_type,opening_balance,currency,issuer_name,account_number,card_network,credit_limit,statement_day,repayment_day
HDFC Savings,Bank Account,50000,INR,HDFC Bank,1234,,,,
ICICI Credit Card,Credit Card,0,INR,ICICI Bank,5678,Visa,200000,15,5
Paytm Wallet,Wallet,1500,INR,Paytm,,,,,
"""


class ParsedAccountRow(RowValidation):
    account: Optional[Account] = None
    duplicate: bool = False

    @property
    def importable(self) -> bool:
        return self.is_valid and not self.duplicate and self.account is not None


def _parse_day(
    row: ParsedAccountRow,
    field_name: str,
    label: str,
    text: str,
) -> Optional[int]:
    if not text:
        return None
    try:
        day = int(text)
    except ValueError:
        day = 0
    if not 1 <= day <= 31:
        row.add_error(field_name, f"{label} must be between 1 and 31", "invalid_value")
        return None
    return day


def validate_account_row(
    row_number: int,
    values: dict[str, str],
    user_id: UUID,
    default_currency: str = "INR",
) -> ParsedAccountRow:
    """Check one row and, if it passes, build its draft Account."""
    row = ParsedAccountRow(row_number=row_number)

    name = values.get("name", "")
    if not name:
        row.add_error("name", "Account name is required", "missing")

    account_type = AccountType.BANK_ACCOUNT
    raw_type = values.get("account_type", "")
    if raw_type:
        matched_type = ACCOUNT_TYPE_SYNONYMS.get(normalize_header(raw_type))
        if matched_type is None:
            row.add_warning(
                "account_type",
                f"Unknown account type '{raw_type}', using Bank Account",
            )
        else:
            account_type = matched_type

    card_network = None
    raw_network = values.get("card_network", "")
    if raw_network:
        card_network = CARD_NETWORK_SYNONYMS.get(normalize_header(raw_network))
        if card_network is None:
            row.add_warning("card_network", f"Unknown card network: {raw_network}")

    opening_balance = Decimal("0.00")
    raw_balance = values.get("opening_balance", "")
    if raw_balance:
        parsed_balance = parse_amount(raw_balance)
        if parsed_balance is None:
            row.add_error("opening_balance", "Opening balance must be a number", "invalid_value")
        else:
            opening_balance = parsed_balance

    credit_limit = None
    raw_limit = values.get("credit_limit", "")
    if raw_limit:
        credit_limit = parse_amount(raw_limit)
        if credit_limit is None or credit_limit < 0:
            row.add_error(
                "credit_limit",
                "Credit limit must be a non-negative number",
                "invalid_value",
            )
            credit_limit = None

    statement_day = _parse_day(row, "statement_day", "Statement day", values.get("statement_day", ""))
    repayment_day = _parse_day(row, "repayment_day", "Repayment day", values.get("repayment_day", ""))

    if not row.is_valid:
        return row

    try:
        row.account = Account(
            user_id=user_id,
            name=name,
            account_type=account_type,
            opening_balance=opening_balance,
            closing_balance=opening_balance,
            currency=values.get("currency") or default_currency,
            issuer_name=values.get("issuer_name") or None,
            account_number=values.get("account_number") or None,
            account_variant=values.get("account_variant") or None,
            card_network=card_network,
            network_variant=values.get("network_variant") or None,
            credit_limit=credit_limit,
            statement_day=statement_day,
            repayment_day=repayment_day,
        )
    except ValidationError as e:
        issues_from_validation_error(row, e)
    return row


def mark_duplicates(rows: list[ParsedAccountRow], existing_names: set[str]) -> None:
    """Flag rows whose name is taken by an account or an earlier row (ignoring case)."""
    seen = {n.lower() for n in existing_names}
    for row in rows:
        if row.account is None:
            continue
        key = row.account.name.lower()
        if key in seen:
            row.duplicate = True
            row.add_warning(
                "name",
                f"Account '{row.account.name}' already exists and will be skipped",
                "duplicate",
            )
        seen.add(key)


class AccountCSVImporter:
    """Reads account CSVs and creates their accounts."""

    table_name = "accounts"

    def __init__(
        self,
        accounts: AccountService,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._accounts = accounts
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    async def parse(
        self,
        user_id: UUID,
        filename: str,
        raw: bytes,
        correlation_id: Optional[UUID] = None,
    ) -> ImportPreview:
        correlation_id = correlation_id or uuid4()
        raw_rows = read_upload(
            filename,
            raw,
            ACCOUNT_HEADER_ALIASES,
            max_bytes=self._settings.max_upload_size_bytes,
            max_rows=self._settings.max_import_rows,
        )
        rows = [
            validate_account_row(
                row_number,
                values,
                user_id,
                default_currency=self._settings.default_currency,
            )
            for row_number, values in raw_rows
        ]

        existing = await self._accounts.list_accounts(user_id, include_inactive=True)
        mark_duplicates(rows, {a.name for a in existing})

        preview = ImportPreview(
            correlation_id=correlation_id,
            user_id=user_id,
            filename=filename,
            table_name=self.table_name,
            rows=rows,
            page_size=self._settings.import_error_page_size,
        )
        logger.info(
            "account_import_parsed",
            filename=filename,
            valid_count=preview.importable_count,
            invalid_count=preview.invalid_count,
            duplicate_count=preview.duplicate_count,
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_import_parsed(
                user_id=user_id,
                table_name=self.table_name,
                filename=filename,
                valid_count=preview.importable_count,
                invalid_count=preview.invalid_count,
                correlation_id=correlation_id,
            )
        return preview

    async def commit(self, preview: ImportPreview) -> ImportResult:
        """
        Create every importable account of a preview in one storage call.

        Raises:
            NoValidRowsError: If nothing is importable
        """
        importable = [r for r in preview.rows if r.importable]
        if not importable:
            raise NoValidRowsError("No valid accounts to import")

        records = [r.account for r in importable]
        try:
            await self._accounts.create_many(records, preview.correlation_id)
        except Exception as e:
            logger.error(
                "account_import_failed",
                error=str(e),
                correlation_id=str(preview.correlation_id),
            )
            if self._audit_logger:
                await self._audit_logger.log_import_failed(
                    user_id=preview.user_id,
                    table_name=self.table_name,
                    error_message=str(e),
                    correlation_id=preview.correlation_id,
                )
            raise

        result = ImportResult(
            correlation_id=preview.correlation_id,
            imported_count=len(records),
            skipped_count=len(preview.rows) - len(records),
        )
        if self._audit_logger:
            await self._audit_logger.log_import_completed(
                user_id=preview.user_id,
                table_name=self.table_name,
                imported_count=result.imported_count,
                skipped_count=result.skipped_count,
                correlation_id=preview.correlation_id,
                details={"filename": preview.filename},
            )
        return result
