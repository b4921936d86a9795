"""
Tests for the Google Sheets backend

The gspread worksheet is replaced by an in-memory fake that keeps
rows as lists of strings, the way Sheets returns them.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fintrack.audit import AuditLogger
from fintrack.config import Settings
from fintrack.ledger import AccountService, TransactionService
from fintrack.models import (
    Account,
    AccountType,
    AuditEventBuilder,
    Transaction,
    TransactionType,
)
from fintrack.orchestrator import FinanceApp
from fintrack.services.storage import (
    DuplicateError,
    GoogleSheetsTableStorage,
    NotFoundError,
    create_sheets_storage,
)
from fintrack.services.storage.google_sheets import (
    columns_for,
    record_to_row,
    row_to_record,
)


def run(coro):
    return asyncio.run(coro)


class FakeWorksheet:
    def __init__(self, columns):
        self.rows = [list(columns)]
        self.reads = 0
        self.writes = 0

    def get_all_values(self):
        self.reads += 1
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.writes += 1
        self.rows.append(list(row))

    def append_rows(self, rows, value_input_option=None):
        self.writes += 1
        self.rows.extend(list(row) for row in rows)

    def update(self, range_name, values, value_input_option=None):
        self.writes += 1
        row_number = int(range_name[1:])
        self.rows[row_number - 1] = list(values[0])

    def delete_rows(self, index):
        self.writes += 1
        del self.rows[index - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient: one fake worksheet per table."""

    def __init__(self):
        self.worksheets = {}

    def get_worksheet(self, table_name, columns):
        if table_name not in self.worksheets:
            self.worksheets[table_name] = FakeWorksheet(columns)
        return self.worksheets[table_name]

    def calls(self):
        """(reads, writes) summed over every worksheet."""
        sheets = self.worksheets.values()
        return sum(w.reads for w in sheets), sum(w.writes for w in sheets)


@pytest.fixture
def client():
    return FakeSheetsClient()


@pytest.fixture
def accounts_table(client):
    return GoogleSheetsTableStorage("accounts", Account, client)


class TestRowConversion:
    """Tests for record <-> cell conversion."""

    def test_cells(self):
        account = Account(user_id=uuid4(), name="HDFC Savings", opening_balance=Decimal("10.50"))
        columns = columns_for(Account)
        row = dict(zip(columns, record_to_row(account, columns)))

        assert row["name"] == "HDFC Savings"
        assert row["opening_balance"] == "10.50"
        assert row["is_active"] == "true"
        assert row["card_network"] == ""

    def test_short_row_uses_defaults(self):
        columns = columns_for(Account)
        user_id = uuid4()
        account = row_to_record([str(uuid4()), str(user_id), "Cash"], columns, Account)

        assert account.user_id == user_id
        assert account.name == "Cash"
        assert account.account_type == AccountType.BANK_ACCOUNT
        assert account.is_active

    def test_transaction_back_from_cells(self):
        txn = Transaction(
            user_id=uuid4(),
            transaction_date=date(2024, 1, 15),
            amount=Decimal("1500.00"),
            transaction_type=TransactionType.DEBIT,
            party="BigMart",
        )
        columns = columns_for(Transaction)
        restored = row_to_record(record_to_row(txn, columns), columns, Transaction)
        assert restored == txn


class TestGoogleSheetsTableStorage:
    """Tests for table operations over a worksheet."""

    def test_insert_and_get(self, accounts_table, client):
        account = Account(user_id=uuid4(), name="HDFC Savings")
        run(accounts_table.insert(account))

        assert len(client.worksheets["accounts"].rows) == 2
        assert run(accounts_table.get(account.id)) == account
        assert run(accounts_table.get(uuid4())) is None

    def test_insert_many_single_append(self, accounts_table, client):
        user_id = uuid4()
        run(accounts_table.insert_many([
            Account(user_id=user_id, name="A"),
            Account(user_id=user_id, name="B"),
        ]))
        assert [a.name for a in run(accounts_table.list(user_id=user_id))] == ["A", "B"]

    def test_duplicate_id_rejected(self, accounts_table):
        account = Account(user_id=uuid4(), name="HDFC Savings")
        run(accounts_table.insert(account))
        with pytest.raises(DuplicateError):
            run(accounts_table.insert(account))

    def test_update(self, accounts_table):
        account = Account(user_id=uuid4(), name="HDFC Savings")
        run(accounts_table.insert(account))

        account.closing_balance = Decimal("99.00")
        run(accounts_table.update(account))
        assert run(accounts_table.get(account.id)).closing_balance == Decimal("99.00")

    def test_update_missing(self, accounts_table):
        with pytest.raises(NotFoundError):
            run(accounts_table.update(Account(user_id=uuid4(), name="Ghost")))

    def test_delete(self, accounts_table):
        account = Account(user_id=uuid4(), name="HDFC Savings")
        run(accounts_table.insert(account))

        assert run(accounts_table.delete(account.id))
        assert not run(accounts_table.delete(account.id))
        assert run(accounts_table.list()) == []

    def test_list_filters(self, accounts_table):
        user_id = uuid4()
        run(accounts_table.insert(Account(user_id=user_id, name="Mine")))
        run(accounts_table.insert(Account(user_id=uuid4(), name="Theirs")))

        assert [a.name for a in run(accounts_table.list(user_id=user_id))] == ["Mine"]
        assert len(run(accounts_table.list(user_id=None))) == 2

    def test_malformed_row_skipped(self, accounts_table, client):
        run(accounts_table.insert(Account(user_id=uuid4(), name="Good")))
        client.worksheets["accounts"].rows.append([str(uuid4()), "not-a-uuid", "Bad"])
        client.worksheets["accounts"].rows.append([])

        assert [a.name for a in run(accounts_table.list())] == ["Good"]


class TestSheetsBackedLedger:
    """The ledger services work unchanged over the Sheets backend."""

    def test_balance_upkeep(self, client):
        storage = create_sheets_storage(client)
        accounts = AccountService(storage)
        transactions = TransactionService(storage, accounts)
        user_id = uuid4()

        account = run(accounts.create_account(Account(
            user_id=user_id, name="HDFC Savings", opening_balance=Decimal("1000.00"),
        )))
        run(transactions.create_transaction(Transaction(
            user_id=user_id,
            transaction_date=date(2024, 1, 15),
            amount=Decimal("250.00"),
            transaction_type=TransactionType.DEBIT,
            account_id=account.id,
        )))

        stored = run(accounts.get_account(user_id, account.id))
        assert stored.closing_balance == Decimal("750.00")
        assert set(client.worksheets) == {"accounts", "transactions"}


class TestSheetsBackedImport:
    """A CSV commit costs the same number of Sheets calls whatever its size."""

    def _commit_calls(self, row_count):
        client = FakeSheetsClient()
        app = FinanceApp(create_sheets_storage(client), Settings())
        user_id = uuid4()
        run(app.initialize())
        run(app.accounts.create_account(Account(user_id=user_id, name="HDFC Savings")))

        lines = ["Date,Amount,Type,Account,Category,Tag,Group"] + [
            f"2024-01-{day % 28 + 1:02d},100,Debit,HDFC Savings,Food & Dining,"
            f"{'groceries' if day % 2 else 'fuel'},Goa Trip"
            for day in range(row_count)
        ]
        preview = run(app.transaction_importer.parse(
            user_id, "statement.csv", "\n".join(lines).encode(),
        ))

        before = client.calls()
        result = run(app.transaction_importer.commit(preview))
        after = client.calls()

        assert result.imported_count == row_count
        assert len(run(app.storage.transactions.list(user_id=user_id))) == row_count
        return after[0] - before[0], after[1] - before[1]

    def test_calls_do_not_grow_with_rows(self):
        assert self._commit_calls(4) == self._commit_calls(40)

    def test_transaction_audit_events_in_one_append(self):
        client = FakeSheetsClient()
        storage = create_sheets_storage(client)
        audit = AuditLogger(storage.audit)
        user_id = uuid4()
        records = [
            Transaction(
                user_id=user_id,
                transaction_date=date(2024, 1, day),
                amount=Decimal("10.00"),
                transaction_type=TransactionType.DEBIT,
            )
            for day in range(1, 6)
        ]

        run(audit.log_records_inserted("transactions", records))

        sheet = client.worksheets["audit"]
        assert sheet.writes == 1
        assert len(sheet.rows) == 1 + len(records)


class TestGoogleSheetsAuditStorage:
    """Tests for the append-only audit sheet."""

    def test_append_and_read_back(self, client):
        storage = create_sheets_storage(client)
        user_id = uuid4()
        record_id = uuid4()
        correlation_id = uuid4()
        event = AuditEventBuilder.record_updated(
            user_id=user_id,
            table_name="transactions",
            record_id=record_id,
            old_data={"amount": "10.00"},
            new_data={"amount": "12.00"},
            correlation_id=correlation_id,
        )

        assert run(storage.audit.append_event(event))

        by_record = run(storage.audit.get_events_by_record("transactions", record_id))
        assert len(by_record) == 1
        restored = by_record[0]
        assert restored.event_id == event.event_id
        assert restored.old_data == {"amount": "10.00"}
        assert restored.details == {"changed_fields": ["amount"]}

        assert run(storage.audit.get_events_by_correlation_id(correlation_id))[0].event_id == event.event_id
        assert run(storage.audit.get_recent_events(user_id=uuid4())) == []

    def test_recent_events_newest_first(self, client):
        storage = create_sheets_storage(client)
        user_id = uuid4()
        first = AuditEventBuilder.import_failed(user_id, "transactions", "boom", uuid4())
        second = AuditEventBuilder.import_failed(user_id, "accounts", "boom", uuid4())
        run(storage.audit.append_event(first))
        run(storage.audit.append_event(second))

        recent = run(storage.audit.get_recent_events(user_id=user_id, limit=1))
        assert [e.event_id for e in recent] == [second.event_id]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
