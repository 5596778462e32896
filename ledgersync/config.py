"""Configuration management for LedgerSync."""

import logging
import sys
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_LOGGER = "ledgersync"

logger = logging.getLogger(__name__)

_logging_configured = False


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Currency conversion
    reporting_currency: str = "EUR"
    exchange_rates_api_key: str = ""
    exchange_rates_url: str = "http://api.exchangeratesapi.io/v1"

    # Outbound HTTP
    http_timeout: float = 10.0

    # Ledger store
    store_backend: Literal["sqlite", "sheets"] = "sqlite"
    google_sheets_id: str = ""
    google_access_token: str = ""
    sheets_api_url: str = "https://sheets.googleapis.com/v4"

    # Data directory
    data_dir: Path = Path.home() / ".ledgersync"

    log_level: str = "INFO"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def db_path(self) -> Path:
        """Get the SQLite ledger path."""
        return self.data_dir / "ledger.db"

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def log_config(self) -> None:
        """Log current configuration with sensitive values redacted."""
        logger.info(f"Reporting currency:  {self.reporting_currency}")
        logger.info(f"Rates API key:       {_redact(self.exchange_rates_api_key)}")
        logger.info(f"Rates API URL:       {self.exchange_rates_url}")
        logger.info(f"HTTP timeout:        {self.http_timeout}s")
        logger.info(f"Store backend:       {self.store_backend}")
        if self.store_backend == "sheets":
            logger.info(f"Spreadsheet:         {self.google_sheets_id or '✗ Not set'}")
            logger.info(f"Access token:        {_redact(self.google_access_token)}")
        else:
            logger.info(f"Database:            {self.db_path}")
        logger.info(f"API Host:            {self.api_host}:{self.api_port}")


def _redact(secret: str) -> str:
    if not secret:
        return "✗ Not set"
    if len(secret) <= 12:
        return "✓ Set"
    return f"✓ Set ({secret[:4]}...{secret[-4:]})"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Attach a single stream handler to the package logger.

    Entrypoints call this once; library modules only use
    ``logging.getLogger(__name__)``.
    """
    global _logging_configured
    if _logging_configured:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False
    _logging_configured = True


# Global settings instance, read by entrypoints only
settings = Settings()
