"""Exceptions raised by the ledger services."""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class OwnershipError(LedgerError):
    """
    The record belongs to another user, or is a read-only system record.

    Raised instead of NotFoundError only when the caller could see the
    record but may not change it (system categories); records owned by
    someone else are reported as not found.
    """
    pass


_RECORD_NOUNS = {
    "accounts": "account",
    "categories": "category",
    "subcategories": "subcategory",
    "tags": "tag",
    "groups": "group",
}


class DuplicateNameError(LedgerError):
    """A record with this name already exists for the user (case-insensitive)."""

    def __init__(self, table_name: str, name: str):
        self.table_name = table_name
        self.name = name
        noun = _RECORD_NOUNS.get(table_name, table_name)
        super().__init__(f"{noun.capitalize()} '{name}' already exists")


class BudgetError(LedgerError):
    """Budget cannot be set (e.g. unknown or invisible category)."""
    pass
