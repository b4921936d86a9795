"""
Import Preview

What the user sees between choosing a file and committing it:
per-row results, counts, unmatched account names and an error
summary grouped by message.
"""

import math
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationError

from fintrack.models.finance import RowValidation


class ErrorGroup(BaseModel):
    """One validation message and every row that produced it."""
    message: str
    count: int
    rows: list[int] = Field(default_factory=list, description="Row numbers, in file order")
    field: Optional[str] = None


class UnmatchedAccount(BaseModel):
    """An account name from the file that matches none of the user's accounts."""
    name: str
    count: int


class ImportResult(BaseModel):
    correlation_id: UUID
    imported_count: int
    skipped_count: int
    created_accounts: list[str] = Field(default_factory=list)
    created_tags: list[str] = Field(default_factory=list)
    created_groups: list[str] = Field(default_factory=list)


def field_for_error(message: str) -> Optional[str]:
    """Which preview column an error message belongs to, if any."""
    if "Date" in message:
        return "date"
    if "amount" in message.lower():
        return "amount"
    if "Type must be" in message:
        return "type"
    if "Invalid mode" in message:
        return "mode"
    if "Invalid nature" in message:
        return "nature"
    return None


def issues_from_validation_error(row: RowValidation, exc: ValidationError) -> None:
    """Record pydantic errors on a row as error issues."""
    for error in exc.errors():
        field_name = ".".join(str(part) for part in error["loc"]) or "row"
        row.add_error(field_name, f"Invalid {field_name}: {error['msg']}", "invalid_value")


class ImportPreview(BaseModel):
    """
    Parsed, validated rows of one uploaded file.

    Rows are subclasses of RowValidation carrying the importer's
    parsed values; they are kept as-is.
    """

    correlation_id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    filename: str
    table_name: str
    rows: list[Any] = Field(default_factory=list)
    unmatched_accounts: list[UnmatchedAccount] = Field(default_factory=list)
    page_size: int = Field(default=5, ge=1)

    @property
    def valid_rows(self) -> list[Any]:
        return [r for r in self.rows if r.is_valid]

    @property
    def invalid_rows(self) -> list[Any]:
        return [r for r in self.rows if not r.is_valid]

    @property
    def valid_count(self) -> int:
        return len(self.valid_rows)

    @property
    def invalid_count(self) -> int:
        return len(self.rows) - self.valid_count

    @property
    def importable_count(self) -> int:
        """Rows commit() will write; valid rows can still be skipped (duplicates)."""
        return sum(1 for r in self.valid_rows if getattr(r, "importable", True))

    @property
    def duplicate_count(self) -> int:
        return self.valid_count - self.importable_count

    def error_summary(self) -> list[ErrorGroup]:
        """
        Errors grouped by message, most frequent first.

        A row with two different errors appears in both groups. Groups
        with equal counts keep the order their message first appeared.
        """
        groups: dict[str, ErrorGroup] = {}
        for row in self.invalid_rows:
            for message in row.errors:
                if message not in groups:
                    groups[message] = ErrorGroup(
                        message=message,
                        count=0,
                        field=field_for_error(message),
                    )
                groups[message].count += 1
                groups[message].rows.append(row.row_number)
        return sorted(groups.values(), key=lambda g: g.count, reverse=True)

    def page_count(self, message: str) -> int:
        for group in self.error_summary():
            if group.message == message:
                return math.ceil(group.count / self.page_size)
        return 0

    def page(self, message: str, page_number: int = 0) -> list[Any]:
        """
        Rows with the given error, page_size at a time.

        page_number is 0-based; out-of-range pages are empty.
        """
        matching = [r for r in self.invalid_rows if message in r.errors]
        start = page_number * self.page_size
        if page_number < 0:
            return []
        return matching[start:start + self.page_size]

    def summary_line(self) -> str:
        """Short status text, e.g. '8 valid, 2 with errors, 1 duplicate skipped'."""
        if not (self.invalid_count or self.duplicate_count):
            return f"{self.importable_count} {self.table_name} ready to import"
        parts = [f"{self.importable_count} valid"]
        if self.invalid_count:
            parts.append(f"{self.invalid_count} with errors")
        if self.duplicate_count:
            noun = "duplicate" if self.duplicate_count == 1 else "duplicates"
            parts.append(f"{self.duplicate_count} {noun} skipped")
        return ", ".join(parts)
