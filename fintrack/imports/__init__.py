"""
CSV bulk import.

Files are parsed into an ImportPreview first; nothing is written
until the preview is committed.
"""

from fintrack.imports.accounts import (
    ACCOUNT_HEADER_ALIASES,
    SAMPLE_ACCOUNTS_CSV,
    AccountCSVImporter,
    ParsedAccountRow,
    validate_account_row,
)
from fintrack.imports.csv_reader import (
    normalize_header,
    parse_line,
    read_rows,
    split_rows,
)
from fintrack.imports.errors import (
    CSVImportError,
    FileTooLargeError,
    InvalidFileError,
    NoValidRowsError,
)
from fintrack.imports.preview import (
    ErrorGroup,
    ImportPreview,
    ImportResult,
    UnmatchedAccount,
    field_for_error,
)
from fintrack.imports.transactions import (
    SAMPLE_TRANSACTIONS_CSV,
    TRANSACTION_HEADER_ALIASES,
    ParsedTransactionRow,
    TransactionCSVImporter,
    validate_transaction_row,
)

__all__ = [
    # Importers
    "AccountCSVImporter",
    "TransactionCSVImporter",
    # Row parsing
    "ParsedAccountRow",
    "ParsedTransactionRow",
    "validate_account_row",
    "validate_transaction_row",
    "ACCOUNT_HEADER_ALIASES",
    "TRANSACTION_HEADER_ALIASES",
    "SAMPLE_ACCOUNTS_CSV",
    "SAMPLE_TRANSACTIONS_CSV",
    # Reader
    "normalize_header",
    "parse_line",
    "read_rows",
    "split_rows",
    # Preview
    "ErrorGroup",
    "ImportPreview",
    "ImportResult",
    "UnmatchedAccount",
    "field_for_error",
    # Exceptions
    "CSVImportError",
    "FileTooLargeError",
    "InvalidFileError",
    "NoValidRowsError",
]
