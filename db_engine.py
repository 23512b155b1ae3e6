"""
Engine and session access for the ledger database.
Lives outside the repositories so models and repositories can both import it.
SQLite connections run in WAL journal mode with foreign keys enforced.
"""

from sqlalchemy import event
from sqlmodel import SQLModel, Session, create_engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[object] = None


def get_engine():
    """Return the shared engine, building it from settings on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            echo=settings.db_echo,
            connect_args={"check_same_thread": False},
        )
        enable_foreign_keys(_engine)
        _enable_wal_mode()
    return _engine


def set_engine(engine) -> None:
    """Swap the shared engine, e.g. for an in-memory database under test."""
    global _engine
    _engine = engine


def enable_foreign_keys(engine) -> None:
    """Issue ``PRAGMA foreign_keys=ON`` on every connection the engine opens."""
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _enable_wal_mode():
    if _engine is None:
        return

    try:
        with _engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            # Concurrent recomputes wait up to 5s for the write lock
            conn.exec_driver_sql("PRAGMA busy_timeout=5000")
            logger.info("Ledger database opened in WAL mode")
    except Exception as e:
        logger.warning(f"WAL mode unavailable, keeping default journal: {e}")


def init_db(engine=None):
    """Create the assets, tickers and transactions tables if they are missing."""
    from models import Asset, Ticker, Transaction  # noqa: F401

    engine = engine or get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Ledger tables ready")


def get_session():
    """Open a session on the shared engine."""
    return Session(get_engine())
