"""
Google Sheets Storage Implementation

Google Sheets is used as the default storage backend because:
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (a batch insert is one append_rows call)
- Limited query capabilities (we filter in Python)

Each logical table is one worksheet whose header row is the model's
field names. Cells hold the JSON form of each value; empty cells
mean "not set" and fall back to the model default.
"""

import json
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import RetryCallState, retry, stop_after_attempt, wait_exponential

from fintrack.config import get_settings
from fintrack.config.settings import GoogleSheetsSettings
from fintrack.models.audit import AuditAction, AuditEvent, AuditEventType, AuditSeverity
from fintrack.services.storage.interface import (
    TABLE_MODELS,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    FinanceStorage,
    NotFoundError,
    RecordT,
    StorageError,
    TableStorageInterface,
    matches_filters,
)


logger = structlog.get_logger(__name__)


# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "action",
    "table_name",
    "record_id",
    "correlation_id",
    "description",
    "old_data_json",
    "new_data_json",
    "details_json",
    "error_message",
]


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "storage_retry",
        attempt=retry_state.attempt_number,
        function=getattr(retry_state.fn, "__name__", "?"),
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


# Shared retry policy for every call that goes over the network
sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=_log_retry,
    reraise=True,
)


def columns_for(model: type[BaseModel]) -> list[str]:
    """Header row for a model's worksheet."""
    return list(model.model_fields.keys())


def record_to_row(record: BaseModel, columns: list[str]) -> list[str]:
    """Convert a record to spreadsheet cells in column order."""
    data = record.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        elif isinstance(value, (dict, list)):
            row.append(json.dumps(value))
        else:
            row.append(str(value))
    return row


def row_to_record(row: list[str], columns: list[str], model: type[RecordT]) -> RecordT:
    """
    Convert spreadsheet cells back to a record.

    Short rows are tolerated (Sheets drops trailing empty cells);
    empty cells are omitted so model defaults apply.
    """
    data = {}
    for index, column in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if cell != "":
            data[column] = cell
    return model.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, table_name: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create the worksheet for a table, with its header row."""
        if table_name in self._worksheets:
            return self._worksheets[table_name]

        title = self._settings.sheet_name_for(table_name)
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
            logger.info("worksheet_created", table=table_name, title=title)

        self._worksheets[table_name] = sheet
        return sheet


class GoogleSheetsTableStorage(TableStorageInterface[RecordT]):
    """
    Google Sheets implementation of one table.

    Rows are located by the id in column A.
    """

    def __init__(
        self,
        table_name: str,
        model: type[RecordT],
        client: GoogleSheetsClient,
    ):
        self.table_name = table_name
        self.model = model
        self._client = client
        self._columns = columns_for(model)

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self.table_name, self._columns)

    @sheets_retry
    def _read_rows(self) -> list[list[str]]:
        """All data rows (header excluded)."""
        return self._sheet().get_all_values()[1:]

    def _find_row_number(self, rows: list[list[str]], record_id: UUID) -> Optional[int]:
        """1-based sheet row number of a record, header being row 1."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == str(record_id):
                return idx
        return None

    def _parse_rows(self, rows: list[list[str]]) -> list[RecordT]:
        records = []
        for idx, row in enumerate(rows, start=2):
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(row_to_record(row, self._columns, self.model))
            except ValueError as e:
                # A hand-edited row that no longer validates is reported, not fatal
                logger.warning(
                    "malformed_row_skipped",
                    table=self.table_name,
                    row_number=idx,
                    error=str(e),
                )
        return records

    async def insert(self, record: RecordT) -> RecordT:
        await self.insert_many([record])
        return record

    async def insert_many(self, records: list[RecordT]) -> list[RecordT]:
        if not records:
            return records
        try:
            existing = {row[0] for row in self._read_rows() if row}
        except Exception as e:
            raise StorageError(f"Failed to read {self.table_name}: {e}")

        for record in records:
            if str(record.id) in existing:
                raise DuplicateError(f"{self.table_name} record already exists: {record.id}")

        rows = [record_to_row(record, self._columns) for record in records]
        try:
            self._append_rows(rows)
        except Exception as e:
            raise StorageError(f"Failed to save {self.table_name}: {e}")
        return records

    @sheets_retry
    def _append_rows(self, rows: list[list[str]]) -> None:
        self._sheet().append_rows(rows, value_input_option="RAW")

    async def get(self, record_id: UUID) -> Optional[RecordT]:
        try:
            rows = self._read_rows()
        except Exception as e:
            raise StorageError(f"Failed to get {self.table_name} record: {e}")

        row_number = self._find_row_number(rows, record_id)
        if row_number is None:
            return None
        return row_to_record(rows[row_number - 2], self._columns, self.model)

    async def update(self, record: RecordT) -> RecordT:
        try:
            rows = self._read_rows()
        except Exception as e:
            raise StorageError(f"Failed to update {self.table_name} record: {e}")

        row_number = self._find_row_number(rows, record.id)
        if row_number is None:
            raise NotFoundError(f"{self.table_name} record not found: {record.id}")

        try:
            self._write_row(row_number, record_to_row(record, self._columns))
        except Exception as e:
            raise StorageError(f"Failed to update {self.table_name} record: {e}")
        return record

    @sheets_retry
    def _write_row(self, row_number: int, row: list[str]) -> None:
        self._sheet().update(
            range_name=f"A{row_number}",
            values=[row],
            value_input_option="RAW",
        )

    async def delete(self, record_id: UUID) -> bool:
        try:
            rows = self._read_rows()
            row_number = self._find_row_number(rows, record_id)
            if row_number is None:
                return False
            self._delete_row(row_number)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete {self.table_name} record: {e}")

    @sheets_retry
    def _delete_row(self, row_number: int) -> None:
        self._sheet().delete_rows(row_number)

    async def list(self, **filters: Any) -> list[RecordT]:
        try:
            rows = self._read_rows()
        except Exception as e:
            raise StorageError(f"Failed to list {self.table_name}: {e}")
        return [
            record for record in self._parse_rows(rows)
            if matches_filters(record, filters)
        ]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet("audit", AUDIT_COLUMNS)

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=UUID(safe_get(4)) if safe_get(4) else None,
            action=AuditAction(safe_get(5)) if safe_get(5) else None,
            table_name=safe_get(6) or None,
            record_id=UUID(safe_get(7)) if safe_get(7) else None,
            correlation_id=UUID(safe_get(8)) if safe_get(8) else None,
            description=safe_get(9),
            old_data=json.loads(safe_get(10)) if safe_get(10) else None,
            new_data=json.loads(safe_get(11)) if safe_get(11) else None,
            details=json.loads(safe_get(12)) if safe_get(12) else {},
            error_message=safe_get(13) or None,
        )

    @sheets_retry
    def _read_rows(self) -> list[list[str]]:
        return self._sheet().get_all_values()[1:]

    def _read_events(self) -> list[AuditEvent]:
        try:
            rows = self._read_rows()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("malformed_audit_row_skipped", error=str(e))
        return events

    @sheets_retry
    def _append(self, row: list) -> None:
        self._sheet().append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.error(
                "audit_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    @sheets_retry
    def _append_many(self, rows: list[list]) -> None:
        self._sheet().append_rows(rows, value_input_option="RAW")

    async def append_events(self, events: list[AuditEvent]) -> bool:
        """Append a batch of events in one call."""
        if not events:
            return True
        try:
            self._append_many([e.to_sheets_row() for e in events])
            return True
        except Exception as e:
            logger.error(
                "audit_write_failed",
                event_count=len(events),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.correlation_id == correlation_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_record(
        self,
        table_name: str,
        record_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.table_name == table_name and e.record_id == record_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        user_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [
            e for e in reversed(self._read_events())
            if user_id is None or e.user_id == user_id
        ]
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


def create_sheets_storage(client: Optional[GoogleSheetsClient] = None) -> FinanceStorage:
    """All tables backed by worksheets of one spreadsheet."""
    client = client or GoogleSheetsClient()
    tables = {
        name: GoogleSheetsTableStorage(name, model, client)
        for name, model in TABLE_MODELS.items()
    }
    return FinanceStorage(audit=GoogleSheetsAuditStorage(client), **tables)
