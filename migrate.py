"""
Database migration script for FolioLedger.
Creates missing tables and brings databases from older schema revisions up
to date. Every step is idempotent.
"""

import logging
import os
import sqlite3
from typing import List, Optional

from sqlmodel import create_engine

from config import configure_logging, get_settings
from db_engine import init_db

logger = logging.getLogger(__name__)


def _column_names(cursor: sqlite3.Cursor, table: str) -> List[str]:
    cursor.execute(f"PRAGMA table_info({table})")
    return [col[1] for col in cursor.fetchall()]


def _add_column_if_missing(db_file: str, table: str, column: str, ddl: str) -> bool:
    """Add a column to a table unless it already exists. Returns True when added."""
    conn = sqlite3.connect(db_file)
    cursor = conn.cursor()

    try:
        columns = _column_names(cursor, table)
        if not columns:
            logger.info(f"Table '{table}' does not exist; skipping '{column}'")
            return False
        if column in columns:
            logger.info(f"Column '{column}' already exists in {table} table")
            return False

        logger.info(f"Adding '{column}' column to {table} table...")
        cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
        conn.commit()
        return True

    except sqlite3.OperationalError as e:
        logger.error(f"Error during migration: {e}")
        conn.rollback()
        raise
    finally:
        conn.close()


def migrate_tickers_add_asset_id(db_file: str) -> bool:
    """Earlier revisions linked assets to tickers; tickers now carry the back-reference."""
    return _add_column_if_missing(db_file, "tickers", "asset_id", "INTEGER REFERENCES assets(id)")


def migrate_tickers_add_name(db_file: str) -> bool:
    """Add the display name column to tickers."""
    return _add_column_if_missing(db_file, "tickers", "name", "TEXT")


def migrate_tickers_add_symbol(db_file: str) -> bool:
    """
    Rename-era databases stored the symbol as ``ticker_name``.
    Adds ``symbol`` and copies the old values across.
    """
    conn = sqlite3.connect(db_file)
    cursor = conn.cursor()

    try:
        columns = _column_names(cursor, "tickers")
        if not columns or "symbol" in columns or "ticker_name" not in columns:
            return False

        logger.info("Copying 'ticker_name' into new 'symbol' column...")
        cursor.execute("ALTER TABLE tickers ADD COLUMN symbol TEXT")
        cursor.execute("UPDATE tickers SET symbol = UPPER(ticker_name)")
        cursor.execute("CREATE UNIQUE INDEX IF NOT EXISTS uq_tickers_symbol ON tickers(symbol)")
        conn.commit()
        return True

    except sqlite3.OperationalError as e:
        logger.error(f"Error during migration: {e}")
        conn.rollback()
        raise
    finally:
        conn.close()


def migrate_transactions_unique_number(db_file: str) -> None:
    """Ensure transaction numbers are unique even on tables created without the constraint."""
    conn = sqlite3.connect(db_file)
    try:
        conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS ix_transactions_transaction_no_unique "
            "ON transactions(transaction_no)"
        )
        conn.commit()
    finally:
        conn.close()


def run_all_migrations(db_file: Optional[str] = None) -> None:
    """
    Run all pending migrations.

    Args:
        db_file: SQLite file to migrate (default: from ``database_url``)
    """
    db_file = db_file or get_settings().sqlite_path
    if db_file is None:
        logger.info("Database is not a SQLite file; creating tables only")
        init_db()
        return

    existed = os.path.exists(db_file)
    logger.info(f"Migrating {db_file} ({'existing' if existed else 'new'} database)")

    if existed:
        migrate_tickers_add_symbol(db_file)
        migrate_tickers_add_name(db_file)
        migrate_tickers_add_asset_id(db_file)

    engine = create_engine(f"sqlite:///{db_file}")
    try:
        init_db(engine)
    finally:
        engine.dispose()
    migrate_transactions_unique_number(db_file)

    logger.info("Migration complete")


if __name__ == "__main__":
    configure_logging()
    run_all_migrations()
