"""
Configuration Management for fintrack

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here so that every external dependency
(the spreadsheet, the storage backend, import limits) is visible in one
place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from uuid import UUID

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per table
    accounts_sheet_name: str = Field(default="Accounts")
    categories_sheet_name: str = Field(default="Categories")
    subcategories_sheet_name: str = Field(default="Subcategories")
    tags_sheet_name: str = Field(default="Tags")
    groups_sheet_name: str = Field(default="Groups")
    transactions_sheet_name: str = Field(default="Transactions")
    budgets_sheet_name: str = Field(default="Budgets")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v

    def sheet_name_for(self, table_name: str) -> str:
        """Worksheet name for a logical table ('transactions', 'audit', ...)."""
        return getattr(self, f"{table_name}_sheet_name")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Root log level"
    )
    storage_backend: str = Field(
        default="sheets",
        pattern="^(sheets|memory)$",
        description="Where records live: Google Sheets or process memory"
    )

    # Sign-in is handled outside the app; this is the user the UI acts as
    local_user_id: UUID = Field(
        default=UUID("00000000-0000-0000-0000-000000000001"),
        description="Owner of every record created through the UI"
    )

    # Money
    default_currency: str = Field(
        default="INR",
        min_length=3,
        max_length=3,
        description="Currency used when a record or CSV row names none"
    )

    # CSV import limits
    max_upload_size_mb: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum CSV upload size in MB"
    )
    max_import_rows: int = Field(
        default=5000,
        ge=1,
        description="Maximum data rows accepted in one CSV import"
    )
    import_error_page_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Rows shown per page in the import error summary"
    )

    # Budgets and dashboard
    budget_warning_percent: float = Field(
        default=80.0,
        gt=0.0,
        le=100.0,
        description="Spending percentage at which a budget turns to warning"
    )
    dashboard_recent_limit: int = Field(default=5, ge=1, le=50)
    dashboard_top_categories: int = Field(default=6, ge=1, le=20)
    cashflow_months: int = Field(default=6, ge=1, le=24)

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so that a memory-backed run
    # does not need spreadsheet credentials.

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name_error: message} for each failure.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    return results
