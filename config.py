"""
Configuration management for FolioLedger.
Uses pydantic-settings for type-safe, centralized configuration.
"""

import logging
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_prefix='FOLIO_',
        extra='ignore'  # Allow extra fields in .env for flexibility
    )

    # Database
    database_url: str = "sqlite:///folio_ledger.db"
    db_echo: bool = False

    # Logging
    log_level: str = "INFO"

    # Ledger arithmetic
    decimal_precision: int = 28  # Significant digits for replay arithmetic
    units_places: int = 4  # Display rounding for quantities
    money_places: int = 2  # Display rounding for amounts

    # Ledger layout
    max_tickers_per_asset: int = 3
    ledger_scope: Literal["ticker", "asset"] = "ticker"
    default_currency: str = "USD"

    @property
    def sqlite_path(self) -> Optional[str]:
        """Filesystem path of the SQLite database, or None for other backends."""
        prefix = "sqlite:///"
        if self.database_url.startswith(prefix):
            path = self.database_url[len(prefix):]
            return path if path and path != ":memory:" else None
        return None


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for entry-point scripts."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
