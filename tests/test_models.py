"""
Tests for fintrack models

Test strategy:
1. Unit tests for individual models and their validators
2. Service and import flows are tested against in-memory storage
3. No real API calls in tests (Sheets is faked)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from fintrack.models import (
    Account,
    AccountType,
    Budget,
    BudgetProgress,
    BudgetStatus,
    Category,
    RowValidation,
    SYSTEM_CATEGORIES,
    Transaction,
    TransactionGroup,
    TransactionNature,
    TransactionType,
    build_system_categories,
)
from fintrack.models.audit import (
    AuditAction,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestAccountModel:
    """Tests for the Account model."""

    def test_account_defaults(self):
        """A bare account is an active INR bank account at zero."""
        account = Account(user_id=uuid4(), name="HDFC Savings")
        assert account.account_type == AccountType.BANK_ACCOUNT
        assert account.opening_balance == Decimal("0.00")
        assert account.closing_balance == Decimal("0.00")
        assert account.currency == "INR"
        assert account.is_active

    def test_account_strips_whitespace(self):
        """Test that whitespace is stripped from the name."""
        account = Account(user_id=uuid4(), name="  HDFC Savings  ")
        assert account.name == "HDFC Savings"

    def test_account_rejects_blank_name(self):
        with pytest.raises(ValueError):
            Account(user_id=uuid4(), name="   ")

    def test_account_currency_uppercased(self):
        account = Account(user_id=uuid4(), name="Wise", currency="usd")
        assert account.currency == "USD"

    def test_account_day_bounds(self):
        """Statement and repayment days are days of a month."""
        with pytest.raises(ValueError):
            Account(user_id=uuid4(), name="Card", statement_day=32)
        with pytest.raises(ValueError):
            Account(user_id=uuid4(), name="Card", repayment_day=0)

    def test_credit_utilization(self):
        """Money owed on a credit line as a share of its limit."""
        card = Account(
            user_id=uuid4(),
            name="ICICI Credit Card",
            account_type=AccountType.CREDIT_CARD,
            credit_limit=Decimal("10000.00"),
            closing_balance=Decimal("-2500.00"),
        )
        assert card.credit_utilization == 0.25

    def test_credit_utilization_only_for_credit_lines(self):
        account = Account(
            user_id=uuid4(),
            name="Savings",
            credit_limit=Decimal("10000.00"),
        )
        assert account.credit_utilization is None


class TestCategoryModels:
    """Tests for categories and groups."""

    def test_system_category_has_no_owner(self):
        with pytest.raises(ValueError, match="System categories cannot have an owner"):
            Category(name="Food", is_system=True, user_id=uuid4())

    def test_user_category_needs_owner(self):
        with pytest.raises(ValueError, match="User categories need an owner"):
            Category(name="Pets")

    def test_category_color_must_be_hex(self):
        with pytest.raises(ValueError):
            Category(name="Pets", user_id=uuid4(), color="red")

    def test_build_system_categories(self):
        """Every built-in category is ownerless and read-only."""
        categories = build_system_categories()
        assert len(categories) == len(SYSTEM_CATEGORIES)
        assert all(c.is_system and c.user_id is None for c in categories)
        assert "Food & Dining" in {c.name for c in categories}

    def test_group_date_validation(self):
        """Test that a group cannot end before it starts."""
        with pytest.raises(ValueError, match="end date cannot be before start date"):
            TransactionGroup(
                user_id=uuid4(),
                name="Goa Trip",
                start_date=date(2024, 3, 10),
                end_date=date(2024, 3, 1),
            )


class TestTransactionModel:
    """Tests for the Transaction model."""

    def _transaction(self, **overrides) -> Transaction:
        data = {
            "user_id": uuid4(),
            "transaction_date": date(2024, 1, 15),
            "amount": Decimal("1500.00"),
            "transaction_type": TransactionType.DEBIT,
        }
        data.update(overrides)
        return Transaction(**data)

    def test_day_is_derived_from_date(self):
        """Test that the weekday always follows the date."""
        txn = self._transaction(day="Friday")
        assert txn.day == "Monday"

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError):
            self._transaction(amount=Decimal("0"))
        with pytest.raises(ValueError):
            self._transaction(amount=Decimal("-10.00"))

    def test_signed_amount(self):
        """Debits take money out, credits put it in."""
        assert self._transaction().signed_amount == Decimal("-1500.00")
        credit = self._transaction(transaction_type=TransactionType.CREDIT)
        assert credit.signed_amount == Decimal("1500.00")

    def test_nature_values(self):
        """Test that stored nature values match the import vocabulary."""
        assert TransactionNature.MONEY_TRANSFER.value == "Money Transfer"
        assert TransactionNature.SYSTEM_CHARGE.value == "System Charge"
        assert len(TransactionNature) == 9


class TestBudgetModels:
    """Tests for budgets and budget progress."""

    def test_budget_month_bounds(self):
        with pytest.raises(ValueError):
            Budget(user_id=uuid4(), category_id=uuid4(), amount=Decimal("100"), month=13, year=2024)

    def test_budget_amount_positive(self):
        with pytest.raises(ValueError):
            Budget(user_id=uuid4(), category_id=uuid4(), amount=Decimal("0"), month=1, year=2024)

    def test_budget_progress(self):
        """Remaining goes negative once overspent."""
        progress = BudgetProgress(
            budget_id=uuid4(),
            category_id=uuid4(),
            category_name="Food & Dining",
            category_color="#F97316",
            amount=Decimal("1000"),
            spent=Decimal("1250"),
            month=1,
            year=2024,
            status=BudgetStatus.OVER,
        )
        assert progress.remaining == Decimal("-250")
        assert progress.progress_percent == 125.0


class TestRowValidation:
    """Tests for per-row validation results."""

    def test_row_with_errors_is_invalid(self):
        row = RowValidation(row_number=2)
        row.add_error("amount", "Valid amount is required", "missing")
        row.add_warning("card_network", "Unknown card network: Zap")

        assert not row.is_valid
        assert row.errors == ["Valid amount is required"]
        assert row.warnings == ["Unknown card network: Zap"]

    def test_warnings_only_is_valid(self):
        """Test that warnings alone don't make a row invalid."""
        row = RowValidation(row_number=3)
        row.add_warning("name", "Account 'Cash' already exists and will be skipped", "duplicate")
        assert row.is_valid

    def test_header_is_never_a_data_row(self):
        with pytest.raises(ValueError):
            RowValidation(row_number=1)


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_INSERTED,
            description="Transaction created",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Row snapshots stay out of the log line."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            action=AuditAction.UPDATE,
            description="Account updated",
            old_data={"name": "Old"},
            new_data={"name": "New"},
            details={"changed_fields": ["name"]},
        )
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "record_updated"
        assert log_dict["action"] == "UPDATE"
        assert log_dict["details"] == {"changed_fields": ["name"]}
        assert "old_data" not in log_dict

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row format."""
        user_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            user_id=user_id,
            action=AuditAction.DELETE,
            table_name="budgets",
            description="Budget deleted",
            old_data={"amount": "500.00"},
        )
        row = event.to_sheets_row()

        assert len(row) == 14
        assert row[4] == str(user_id)
        assert row[5] == "DELETE"
        assert row[6] == "budgets"
        assert row[10] == '{"amount": "500.00"}'
        assert row[11] == ""

    def test_builder_record_inserted(self):
        record_id = uuid4()
        event = AuditEventBuilder.record_inserted(
            user_id=uuid4(),
            table_name="transactions",
            record_id=record_id,
            new_data={"amount": "10.00"},
        )
        assert event.action == AuditAction.INSERT
        assert event.record_id == record_id
        assert event.description == "Transaction created"

    def test_builder_record_updated_lists_changed_fields(self):
        """updated_at changes on every write and is not reported."""
        event = AuditEventBuilder.record_updated(
            user_id=uuid4(),
            table_name="transactions",
            record_id=uuid4(),
            old_data={"amount": "10.00", "party": "A", "updated_at": "t1"},
            new_data={"amount": "12.00", "party": "A", "updated_at": "t2"},
        )
        assert event.details["changed_fields"] == ["amount"]

    def test_builder_severities(self):
        balance = AuditEventBuilder.balance_recomputed(uuid4(), uuid4(), "0.00", "10.00")
        failed = AuditEventBuilder.import_failed(uuid4(), "transactions", "boom", uuid4())

        assert balance.severity == AuditSeverity.DEBUG
        assert failed.severity == AuditSeverity.ERROR
        assert failed.error_message == "boom"

    def test_builder_entity_auto_created(self):
        event = AuditEventBuilder.entity_auto_created(
            user_id=uuid4(),
            table_name="tags",
            record_id=uuid4(),
            name="groceries",
        )
        assert event.event_type == AuditEventType.ENTITY_AUTO_CREATED
        assert event.description == "Created tag 'groceries' during import"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
