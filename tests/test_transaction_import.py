"""
Tests for transaction CSV import

Row validation is tested directly; parse/commit run against the
in-memory backend with system categories seeded.
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from fintrack.config import AppSettings, Settings
from fintrack.imports import (
    ImportPreview,
    InvalidFileError,
    FileTooLargeError,
    NoValidRowsError,
    SAMPLE_TRANSACTIONS_CSV,
    TransactionCSVImporter,
    field_for_error,
    validate_transaction_row,
)
from fintrack.imports.transactions import find_unmatched_accounts, parse_amount
from fintrack.models import (
    Account,
    AuditEventType,
    Transaction,
    TransactionMode,
    TransactionNature,
    TransactionType,
)
from fintrack.orchestrator import FinanceApp
from fintrack.services.storage import DuplicateError, StorageError
from fintrack.services.storage.in_memory import InMemoryTableStorage


USER_ID = uuid4()


def row_values(**overrides) -> dict[str, str]:
    values = {
        "transaction_date": "2024-01-15",
        "amount": "1500.00",
        "transaction_type": "Debit",
    }
    values.update(overrides)
    return values


def validate(row_number: int = 2, **overrides):
    return validate_transaction_row(row_number, row_values(**overrides), USER_ID)


def upload(*lines: str) -> bytes:
    return "\n".join(lines).encode("utf-8")


class TestParseAmount:
    """Tests for amount parsing."""

    def test_thousands_separators(self):
        assert parse_amount("1,50,000.50") == Decimal("150000.50")

    def test_rounded_to_cents(self):
        assert parse_amount("10.005") == Decimal("10.01")

    @pytest.mark.parametrize("text", ["", "abc", "12abc", "NaN", "Infinity"])
    def test_not_a_number(self, text):
        assert parse_amount(text) is None

    @pytest.mark.parametrize("text", ["1e30", "99999999999999999999999999999"])
    def test_too_many_digits(self, text):
        assert parse_amount(text) is None


class TestValidateTransactionRow:
    """Tests for per-row validation."""

    def test_valid_row_builds_draft(self):
        row = validate(
            description="Grocery shopping",
            party="BigMart",
            transaction_mode="UPI",
            transaction_nature="Purchase",
            category_name="Food & Dining",
            tag="groceries",
        )
        txn = row.transaction

        assert row.is_valid
        assert txn.amount == Decimal("1500.00")
        assert txn.transaction_type == TransactionType.DEBIT
        assert txn.transaction_mode == TransactionMode.UPI
        assert txn.transaction_nature == TransactionNature.PURCHASE
        assert txn.currency == "INR"
        assert txn.day == "Monday"
        assert txn.category_name == "Food & Dining"
        assert txn.tag == "groceries"
        assert txn.account_id is None

    def test_row_currency_wins(self):
        assert validate(currency="usd").transaction.currency == "USD"

    def test_missing_date(self):
        row = validate(transaction_date="")
        assert row.errors == ["Date is required"]
        assert row.transaction is None

    def test_invalid_amount(self):
        assert validate(amount="abc").errors == ["Valid amount is required"]
        assert validate(amount="").errors == ["Valid amount is required"]

    @pytest.mark.parametrize("amount", ["0", "-5", "0.001"])
    def test_amount_must_be_positive(self, amount):
        assert validate(amount=amount).errors == ["Amount must be greater than zero"]

    def test_type_is_case_sensitive(self):
        assert validate(transaction_type="debit").errors == ["Type must be Debit or Credit"]

    def test_invalid_mode(self):
        assert validate(transaction_mode="Bitcoin").errors == ["Invalid mode: Bitcoin"]

    def test_invalid_nature(self):
        assert validate(transaction_nature="Gift").errors == ["Invalid nature: Gift"]

    @pytest.mark.parametrize("nature", [n.value for n in TransactionNature])
    def test_every_nature_accepted(self, nature):
        assert validate(transaction_nature=nature).is_valid

    @pytest.mark.parametrize("raw_date", ["15/01/2024", "2024-1-5", "2024-02-30"])
    def test_bad_date_format(self, raw_date):
        assert validate(transaction_date=raw_date).errors == ["Date must be YYYY-MM-DD format"]

    def test_errors_collected_in_order(self):
        row = validate_transaction_row(
            7,
            {"transaction_date": "", "amount": "", "transaction_type": "", "transaction_mode": "Fax"},
            USER_ID,
        )
        assert row.row_number == 7
        assert row.errors == [
            "Date is required",
            "Valid amount is required",
            "Type must be Debit or Credit",
            "Invalid mode: Fax",
        ]


class TestFieldForError:
    """Tests for mapping messages to preview columns."""

    @pytest.mark.parametrize("message,field", [
        ("Date is required", "date"),
        ("Date must be YYYY-MM-DD format", "date"),
        ("Valid amount is required", "amount"),
        ("Amount must be greater than zero", "amount"),
        ("Type must be Debit or Credit", "type"),
        ("Invalid mode: Fax", "mode"),
        ("Invalid nature: Gift", "nature"),
        ("Something else went wrong", None),
    ])
    def test_mapping(self, message, field):
        assert field_for_error(message) == field


class TestImportPreview:
    """Tests for preview counts, error grouping and paging."""

    def _preview(self, rows, page_size=5) -> ImportPreview:
        return ImportPreview(
            user_id=USER_ID,
            filename="statement.csv",
            table_name="transactions",
            rows=rows,
            page_size=page_size,
        )

    def test_counts_and_summary_line(self):
        preview = self._preview([
            validate(2),
            validate(3, transaction_type="x"),
            validate(4, transaction_date=""),
        ])
        assert preview.valid_count == 1
        assert preview.invalid_count == 2
        assert preview.summary_line() == "1 valid, 2 with errors"

    def test_summary_line_all_valid(self):
        preview = self._preview([validate(2), validate(3)])
        assert preview.summary_line() == "2 transactions ready to import"

    def test_error_summary_most_frequent_first(self):
        preview = self._preview([
            validate(2, transaction_date=""),
            validate(3, transaction_type="x"),
            validate(4, transaction_type="x"),
            validate(5),
        ])
        summary = preview.error_summary()

        assert [g.message for g in summary] == [
            "Type must be Debit or Credit",
            "Date is required",
        ]
        assert summary[0].count == 2
        assert summary[0].rows == [3, 4]
        assert summary[0].field == "type"

    def test_error_summary_ties_keep_first_seen_order(self):
        preview = self._preview([
            validate(2, transaction_mode="Fax"),
            validate(3, amount="0"),
        ])
        assert [g.message for g in preview.error_summary()] == [
            "Invalid mode: Fax",
            "Amount must be greater than zero",
        ]

    def test_row_with_two_errors_in_both_groups(self):
        preview = self._preview([validate(2, transaction_date="", amount="x")])
        assert [g.rows for g in preview.error_summary()] == [[2], [2]]

    def test_paging(self):
        message = "Type must be Debit or Credit"
        preview = self._preview(
            [validate(n, transaction_type="x") for n in range(2, 7)],
            page_size=2,
        )

        assert preview.page_count(message) == 3
        assert [r.row_number for r in preview.page(message, 0)] == [2, 3]
        assert [r.row_number for r in preview.page(message, 2)] == [6]
        assert preview.page(message, 3) == []
        assert preview.page(message, -1) == []
        assert preview.page_count("No such message") == 0


class TestFindUnmatchedAccounts:
    """Tests for reporting account names with no matching account."""

    def test_case_insensitive_first_spelling(self):
        accounts = [Account(user_id=USER_ID, name="HDFC Savings")]
        rows = [
            validate(2, account_name="hdfc savings"),
            validate(3, account_name="Axis Bank"),
            validate(4, account_name="AXIS BANK"),
            validate(5),
        ]
        unmatched = find_unmatched_accounts(rows, accounts)

        assert [(u.name, u.count) for u in unmatched] == [("Axis Bank", 2)]


class TestTransactionCSVImporter:
    """Tests for parse and commit against in-memory storage."""

    def _hdfc(self, app, user_id) -> Account:
        return asyncio.run(app.accounts.create_account(Account(
            user_id=user_id,
            name="HDFC Savings",
            opening_balance=Decimal("1000.00"),
        )))

    def _parse(self, app, user_id, raw: bytes, filename="statement.csv"):
        return asyncio.run(app.transaction_importer.parse(user_id, filename, raw))

    def test_parse_writes_nothing(self, app, user_id):
        self._hdfc(app, user_id)
        preview = self._parse(app, user_id, SAMPLE_TRANSACTIONS_CSV.encode())

        assert preview.valid_count == 3
        assert preview.invalid_count == 0
        assert [(u.name, u.count) for u in preview.unmatched_accounts] == [("ICICI Credit Card", 1)]
        assert asyncio.run(app.storage.transactions.list()) == []

        events = asyncio.run(app.storage.audit.get_events_by_correlation_id(preview.correlation_id))
        assert [e.event_type for e in events] == [AuditEventType.IMPORT_PARSED]

    def test_commit_links_names(self, app, user_id):
        hdfc = self._hdfc(app, user_id)
        preview = self._parse(app, user_id, SAMPLE_TRANSACTIONS_CSV.encode())
        result = asyncio.run(app.transaction_importer.commit(preview))

        assert result.imported_count == 3
        assert result.skipped_count == 0
        assert result.created_accounts == []
        assert result.created_tags == ["groceries", "subscriptions"]
        assert result.created_groups == []

        food = asyncio.run(app.catalog.find_category(user_id, "Food & Dining"))
        stored = {t.party: t for t in asyncio.run(app.storage.transactions.list())}
        assert stored["BigMart"].account_id == hdfc.id
        assert stored["BigMart"].category_id == food.id
        assert stored["BigMart"].tag_id is not None
        # Unknown account: imported without a link
        assert stored["Netflix"].account_id is None

        account = asyncio.run(app.accounts.get_account(user_id, hdfc.id))
        assert account.closing_balance == Decimal("49500.00")

    def test_commit_creates_missing_accounts(self, app, user_id):
        self._hdfc(app, user_id)
        preview = self._parse(app, user_id, SAMPLE_TRANSACTIONS_CSV.encode())
        result = asyncio.run(app.transaction_importer.commit(preview, create_missing_accounts=True))

        assert result.created_accounts == ["ICICI Credit Card"]
        icici = asyncio.run(app.accounts.find_by_name(user_id, "icici credit card"))
        assert icici.closing_balance == Decimal("-299.00")

        events = asyncio.run(app.storage.audit.get_events_by_correlation_id(preview.correlation_id))
        auto_created = [e for e in events if e.event_type == AuditEventType.ENTITY_AUTO_CREATED]
        assert {e.table_name for e in auto_created} == {"accounts", "tags"}

    def test_commit_audit_trail(self, app, user_id):
        self._hdfc(app, user_id)
        preview = self._parse(app, user_id, SAMPLE_TRANSACTIONS_CSV.encode())
        asyncio.run(app.transaction_importer.commit(preview))

        events = asyncio.run(app.storage.audit.get_events_by_correlation_id(preview.correlation_id))
        types = [e.event_type for e in events]
        assert types.count(AuditEventType.RECORD_INSERTED) == 3
        assert types.count(AuditEventType.IMPORT_COMPLETED) == 1
        completed = next(e for e in events if e.event_type == AuditEventType.IMPORT_COMPLETED)
        assert completed.details["imported_count"] == 3
        assert completed.details["unmatched_accounts"] == ["ICICI Credit Card"]

    def test_invalid_rows_skipped(self, app, user_id):
        preview = self._parse(app, user_id, upload(
            "Date,Amount,Type,Description",
            "2024-01-15,100,Debit,Coffee",
            "2024-01-16,abc,Debit,Broken",
        ))
        result = asyncio.run(app.transaction_importer.commit(preview))

        assert result.imported_count == 1
        assert result.skipped_count == 1
        stored = asyncio.run(app.storage.transactions.list())
        assert [t.description for t in stored] == ["Coffee"]

    def test_oversized_amount_reported_on_its_row(self, app, user_id):
        preview = self._parse(app, user_id, upload(
            "Date,Amount,Type",
            "2024-01-15,100,Debit",
            "2024-01-16,99999999999999999999999999999,Debit",
        ))

        assert preview.valid_count == 1
        assert preview.invalid_rows[0].row_number == 3
        assert preview.invalid_rows[0].errors == ["Valid amount is required"]

    def test_groups_created_once(self, app, user_id):
        preview = self._parse(app, user_id, upload(
            "Date,Amount,Type,Group",
            "2024-03-01,4000,Debit,Goa Trip",
            "2024-03-02,1200,Debit,goa trip",
        ))
        result = asyncio.run(app.transaction_importer.commit(preview))

        assert result.created_groups == ["Goa Trip"]
        group_ids = {t.group_id for t in asyncio.run(app.storage.transactions.list())}
        assert len(group_ids) == 1 and None not in group_ids

    def test_subcategory_resolved_within_category(self, app, user_id):
        pets = asyncio.run(app.catalog.create_category(user_id, "Pets"))
        food = asyncio.run(app.catalog.create_subcategory(user_id, pets.id, "Food"))
        preview = self._parse(app, user_id, upload(
            "Date,Amount,Type,Category,Subcategory",
            "2024-03-01,800,Debit,pets,food",
            "2024-03-02,300,Debit,Pets,Toys",
        ))
        asyncio.run(app.transaction_importer.commit(preview))

        stored = sorted(asyncio.run(app.storage.transactions.list()), key=lambda t: t.transaction_date)
        assert stored[0].category_id == pets.id
        assert stored[0].subcategory_id == food.id
        assert stored[1].subcategory_id is None
        assert stored[1].subcategory_name == "Toys"

    def test_no_valid_rows(self, app, user_id):
        preview = self._parse(app, user_id, upload("Date,Amount,Type", ",,"))
        with pytest.raises(NoValidRowsError, match="No valid transactions"):
            asyncio.run(app.transaction_importer.commit(preview))

    def test_rejects_non_csv(self, app, user_id):
        with pytest.raises(InvalidFileError):
            self._parse(app, user_id, b"Date\n2024-01-01", filename="statement.txt")

    def test_row_limit_from_settings(self, app, user_id):
        importer = TransactionCSVImporter(
            app.accounts,
            app.catalog,
            app.transactions,
            app.audit_logger,
            settings=AppSettings(max_import_rows=2),
        )
        raw = upload("Date,Amount,Type", *["2024-01-01,10,Debit"] * 3)
        with pytest.raises(FileTooLargeError):
            asyncio.run(importer.parse(user_id, "statement.csv", raw))

    def test_same_preview_cannot_commit_twice(self, app, user_id):
        preview = self._parse(app, user_id, upload("Date,Amount,Type", "2024-01-01,10,Debit"))
        asyncio.run(app.transaction_importer.commit(preview))
        with pytest.raises(DuplicateError):
            asyncio.run(app.transaction_importer.commit(preview))

    def test_failed_insert_is_audited(self, storage, user_id):
        class FailingTransactions(InMemoryTableStorage):
            async def insert_many(self, records):
                raise StorageError("sheet unavailable")

        storage.transactions = FailingTransactions("transactions", Transaction)
        app = FinanceApp(storage, Settings())
        asyncio.run(app.initialize())

        preview = self._parse(app, user_id, upload("Date,Amount,Type", "2024-01-01,10,Debit"))
        with pytest.raises(StorageError, match="sheet unavailable"):
            asyncio.run(app.transaction_importer.commit(preview))

        events = asyncio.run(storage.audit.get_events_by_correlation_id(preview.correlation_id))
        failed = [e for e in events if e.event_type == AuditEventType.IMPORT_FAILED]
        assert len(failed) == 1
        assert failed[0].error_message == "sheet unavailable"
        assert not any(e.event_type == AuditEventType.IMPORT_COMPLETED for e in events)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
