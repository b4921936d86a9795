"""
Core Data Models for fintrack

These models define the strict schemas for every record the tracker stores.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

Money is always Decimal with two places. Identities are UUIDs.
Every user-owned record carries the owner's user_id; system categories
are the only records without one.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


Money = Annotated[Decimal, Field(decimal_places=2)]


# =============================================================================
# ENUMS - Finite set of valid values (values are exactly what is stored)
# =============================================================================

class AccountType(str, Enum):
    """Kinds of account a user can hold."""
    CASH = "Cash"
    BANK_ACCOUNT = "Bank Account"
    SAVINGS_ACCOUNT = "Savings Account"
    SALARY_ACCOUNT = "Salary Account"
    CREDIT_CARD = "Credit Card"
    WALLET = "Wallet"
    DEMAT = "Demat"
    DEMAT_ACCOUNT = "Demat Account"
    LOAN = "Loan"
    LOAN_ACCOUNT = "Loan Account"
    PERSONAL_LOAN = "Personal Loan"
    INSURANCE_ACCOUNT = "Insurance Account"
    OVERDRAFT = "Overdraft"
    BNPL = "BNPL"

    @property
    def is_credit_line(self) -> bool:
        """Accounts whose balance is money owed against a limit."""
        return self in {
            AccountType.CREDIT_CARD,
            AccountType.OVERDRAFT,
            AccountType.BNPL,
        }


class CardNetwork(str, Enum):
    VISA = "Visa"
    MASTERCARD = "Mastercard"
    RUPAY = "Rupay"
    AMEX = "Amex"
    DINERS = "Diners"
    DISCOVER = "Discover"
    JCB = "JCB"
    OTHER = "Other"


class TransactionType(str, Enum):
    """
    Direction of money relative to the account.

    Debit takes money out, Credit puts money in.
    """
    DEBIT = "Debit"
    CREDIT = "Credit"


class TransactionMode(str, Enum):
    """Payment rail the transaction went over."""
    UPI = "UPI"
    NEFT = "NEFT"
    IMPS = "IMPS"
    RTGS = "RTGS"
    CHEQUE = "Cheque"
    BBPS = "BBPS"
    EMI = "EMI"
    CASH = "Cash"
    CARD = "Card"
    ACH = "ACH"
    OTHER = "Other"


class TransactionNature(str, Enum):
    MONEY_TRANSFER = "Money Transfer"
    AUTO_SWEEP = "Auto Sweep"
    SYSTEM_CHARGE = "System Charge"
    CHARGE = "Charge"
    REVERSAL = "Reversal"
    REWARDS = "Rewards"
    PURCHASE = "Purchase"
    INCOME = "Income"
    OTHER = "Other"


class BudgetStatus(str, Enum):
    """Where a budget stands against its spending."""
    OK = "ok"
    WARNING = "warning"  # past the warning threshold
    OVER = "over"        # spent more than budgeted


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    A money container owned by one user.

    closing_balance is DERIVED: opening_balance + credits - debits.
    The ledger recomputes it whenever a linked transaction changes;
    nothing else should write it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Account name, unique per user (case-insensitive)"
    )
    account_type: AccountType = AccountType.BANK_ACCOUNT
    opening_balance: Money = Decimal("0.00")
    closing_balance: Money = Decimal("0.00")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    is_active: bool = True

    # Issuer details
    issuer_name: Optional[str] = Field(default=None, max_length=200)
    account_number: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Usually the last few digits only"
    )
    account_variant: Optional[str] = Field(default=None, max_length=100)

    # Card details
    card_network: Optional[CardNetwork] = None
    network_variant: Optional[str] = Field(default=None, max_length=100)
    credit_limit: Optional[Money] = Field(default=None, ge=0)
    statement_day: Optional[int] = Field(default=None, ge=1, le=31)
    repayment_day: Optional[int] = Field(default=None, ge=1, le=31)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def credit_utilization(self) -> Optional[float]:
        """
        Share of the credit limit in use, for credit lines.

        A credit line carries a negative closing balance when money is owed.
        """
        if not self.account_type.is_credit_line or not self.credit_limit:
            return None
        owed = max(-self.closing_balance, Decimal("0"))
        return float(owed / self.credit_limit)


# =============================================================================
# CATEGORISATION
# =============================================================================

class Category(BaseModel):
    """
    Spending/income category.

    System categories (is_system=True) have no owner, are visible to
    every user and are read-only.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(
        default=None,
        pattern="^#[0-9A-Fa-f]{6}$",
        description="Hex colour used by charts"
    )
    is_system: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_owner(self) -> 'Category':
        if self.is_system and self.user_id is not None:
            raise ValueError("System categories cannot have an owner")
        if not self.is_system and self.user_id is None:
            raise ValueError("User categories need an owner")
        return self


class Subcategory(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    subcategory_icon: Optional[str] = Field(default=None, max_length=50)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Tag(BaseModel):
    """Free-form label; names are unique per user, ignoring case."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern="^#[0-9A-Fa-f]{6}$")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TransactionGroup(BaseModel):
    """A named bundle of transactions, e.g. a trip or a renovation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'TransactionGroup':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Group end date cannot be before start date")
        return self


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single money movement on (optionally) one account.

    Category, subcategory, tag and group are stored twice: as an id when
    the name matched a known record, and as plain text so that imported
    names survive even when nothing matched.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID

    transaction_date: date
    day: Optional[str] = Field(
        default=None,
        description="Weekday name, derived from transaction_date"
    )
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Always positive; direction is transaction_type")
    ]
    currency: str = Field(default="INR", min_length=3, max_length=3)
    transaction_type: TransactionType

    account_id: Optional[UUID] = None
    related_transaction_id: Optional[UUID] = None

    description: Optional[str] = Field(default=None, max_length=500)
    party: Optional[str] = Field(default=None, max_length=200)
    bank_remarks: Optional[str] = Field(default=None, max_length=500)
    transaction_mode: Optional[TransactionMode] = None
    transaction_nature: Optional[TransactionNature] = None

    category_id: Optional[UUID] = None
    subcategory_id: Optional[UUID] = None
    category_name: Optional[str] = Field(default=None, max_length=100)
    subcategory_name: Optional[str] = Field(default=None, max_length=100)
    tag_id: Optional[UUID] = None
    tag: Optional[str] = Field(default=None, max_length=100)
    group_id: Optional[UUID] = None
    group_name: Optional[str] = Field(default=None, max_length=200)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode='after')
    def derive_day(self) -> 'Transaction':
        self.day = self.transaction_date.strftime("%A")
        return self

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it moves the account balance (+credit, -debit)."""
        if self.transaction_type == TransactionType.CREDIT:
            return self.amount
        return -self.amount


# =============================================================================
# BUDGETS
# =============================================================================

class Budget(BaseModel):
    """
    Monthly spending limit for one category.

    (user_id, category_id, month, year) is unique; setting a budget
    for an existing key replaces its amount.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    category_id: UUID
    amount: Annotated[Decimal, Field(gt=0, decimal_places=2)]
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class BudgetProgress(BaseModel):
    """A budget joined with what was actually spent in its month."""

    budget_id: UUID
    category_id: UUID
    category_name: str
    category_color: str
    amount: Decimal
    spent: Decimal
    month: int
    year: int
    status: BudgetStatus

    @property
    def remaining(self) -> Decimal:
        """Negative once overspent."""
        return self.amount - self.spent

    @property
    def progress_percent(self) -> float:
        return float(self.spent / self.amount * 100)


class BudgetOverview(BaseModel):
    """All budgets for one month plus their totals."""

    month: int
    year: int
    budgets: list[BudgetProgress] = Field(default_factory=list)
    total_budget: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    status: BudgetStatus = BudgetStatus.OK

    @property
    def overall_progress(self) -> float:
        if self.total_budget <= 0:
            return 0.0
        return float(self.total_spent / self.total_budget * 100)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found in a record or CSV row."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class RowValidation(BaseModel):
    """
    Outcome of validating one CSV data row.

    A row is valid when it has no error-severity issues; warnings are
    shown to the user but do not block the import.
    """

    row_number: int = Field(
        ...,
        ge=2,
        description="Position among the non-blank rows of the file; the header is row 1"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, field: str, message: str, issue_type: str = "invalid_format") -> None:
        self.issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=message,
            severity="error",
        ))

    def add_warning(self, field: str, message: str, issue_type: str = "invalid_value") -> None:
        self.issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=message,
            severity="warning",
        ))


# =============================================================================
# SEED DATA
# =============================================================================

SYSTEM_CATEGORIES: list[tuple[str, str, str]] = [
    ("Food & Dining", "utensils", "#F97316"),
    ("Transportation", "car", "#3B82F6"),
    ("Shopping", "shopping-bag", "#EC4899"),
    ("Entertainment", "film", "#8B5CF6"),
    ("Bills & Utilities", "receipt", "#EF4444"),
    ("Healthcare", "heart-pulse", "#10B981"),
    ("Education", "book-open", "#6366F1"),
    ("Travel", "plane", "#0EA5E9"),
    ("Investment", "trending-up", "#22C55E"),
    ("Income", "wallet", "#14B8A6"),
    ("Transfer", "arrow-left-right", "#64748B"),
    ("Other", "circle", "#94A3B8"),
]

# Colour for spending with no category or an unknown one
UNCATEGORIZED_COLOR = "#94A3B8"


def build_system_categories() -> list[Category]:
    """Fresh Category records for the built-in categories."""
    return [
        Category(name=name, icon=icon, color=color, is_system=True)
        for name, icon, color in SYSTEM_CATEGORIES
    ]
