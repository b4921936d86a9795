"""Exceptions raised while reading or committing a CSV import."""


class CSVImportError(Exception):
    """Base exception for CSV imports."""
    pass


class InvalidFileError(CSVImportError):
    """Not a .csv file, or not readable as UTF-8 text."""
    pass


class FileTooLargeError(CSVImportError):
    """Upload exceeds the configured size or row limit."""
    pass


class NoValidRowsError(CSVImportError):
    """Nothing left to import once invalid rows are set aside."""
    pass
