"""Tests for application wiring and the audit logger."""

import asyncio
from uuid import uuid4

import pytest

from fintrack.audit import AuditLogger
from fintrack.config import Settings
from fintrack.models import AuditEventBuilder, SYSTEM_CATEGORIES
from fintrack.orchestrator import create_app_components
from fintrack.services.storage import InMemoryAuditStorage, InMemoryTableStorage, create_memory_storage


def run(coro):
    return asyncio.run(coro)


class TestCreateAppComponents:
    """Tests for backend selection."""

    def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        app = create_app_components(Settings(_env_file=None))
        assert isinstance(app.storage.accounts, InMemoryTableStorage)

    def test_explicit_storage_wins(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "sheets")
        storage = create_memory_storage()
        app = create_app_components(Settings(_env_file=None), storage=storage)
        assert app.storage is storage

    def test_unconfigured_sheets_falls_back_to_memory(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("STORAGE_BACKEND", "sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        app = create_app_components(Settings(_env_file=None))
        assert isinstance(app.storage.accounts, InMemoryTableStorage)
        assert app.sheets_client is None

    def test_initialize_is_idempotent(self, app, user_id):
        run(app.initialize())
        assert len(run(app.catalog.list_categories(user_id))) == len(SYSTEM_CATEGORIES)

    def test_services_share_one_audit_trail(self, app, user_id):
        assert app.transactions._audit_logger is app.audit_logger
        assert app.transaction_importer._audit_logger is app.audit_logger


class TestAuditLogger:
    """Tests for audit persistence rules."""

    def test_unaudited_tables_skipped(self):
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        run(audit.log_record_inserted(uuid4(), "tags", uuid4(), {"name": "x"}))
        run(audit.log_record_inserted(uuid4(), "budgets", uuid4(), {"amount": "1.00"}))

        events = run(storage.get_recent_events())
        assert [e.table_name for e in events] == ["budgets"]

    def test_storage_failure_does_not_raise(self):
        class BrokenStorage(InMemoryAuditStorage):
            async def append_event(self, event):
                raise RuntimeError("disk full")

        audit = AuditLogger(BrokenStorage())
        event = AuditEventBuilder.import_failed(uuid4(), "transactions", "boom", uuid4())
        assert run(audit.log(event)) is False

    def test_batch_storage_failure_does_not_raise(self):
        class BrokenStorage(InMemoryAuditStorage):
            async def append_events(self, events):
                raise RuntimeError("disk full")

        events = [
            AuditEventBuilder.import_failed(uuid4(), "transactions", "boom", uuid4())
            for _ in range(2)
        ]
        assert run(AuditLogger(BrokenStorage()).log_many(events)) is False

    def test_without_storage(self):
        event = AuditEventBuilder.import_failed(uuid4(), "transactions", "boom", uuid4())
        assert run(AuditLogger().log(event)) is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
