"""
Ticker Repository - data access layer for Ticker model.
Optimized with optional session parameter for transaction reuse.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from sqlmodel import Session, select

from db_engine import get_engine
from models import Ticker
from services.common import normalize_symbol, to_decimal, to_naive_utc
from services.errors import StalePriceError


class TickerRepository:
    """Repository for Ticker CRUD operations."""

    @staticmethod
    def add(
        symbol: str,
        currency: str,
        exchange: str = "",
        name: Optional[str] = None,
        asset_id: Optional[int] = None,
        commit: bool = True,
        session: Optional[Session] = None
    ) -> Ticker:
        """
        Add a new ticker to the database.

        Args:
            symbol: Ticker symbol (stored upper-case)
            currency: Quote currency
            exchange: Exchange name or suffix
            name: Optional display name
            asset_id: Optional owning asset
            commit: Commit immediately; False only flushes so the caller
                can stage several writes in one transaction
            session: Optional existing session for transaction reuse

        Returns:
            Created Ticker object
        """
        def _create_ticker(sess: Session) -> Ticker:
            ticker = Ticker(
                symbol=normalize_symbol(symbol),
                currency=currency.upper(),
                exchange=exchange,
                name=name,
                asset_id=asset_id
            )
            sess.add(ticker)
            if commit:
                sess.commit()
                sess.refresh(ticker)
            else:
                sess.flush()
            return ticker

        if session is not None:
            return _create_ticker(session)
        else:
            with Session(get_engine()) as session:
                return _create_ticker(session)

    @staticmethod
    def get_by_id(ticker_id: int, session: Optional[Session] = None) -> Optional[Ticker]:
        """Retrieve a ticker by its ID."""
        def _get_by_id(sess: Session) -> Optional[Ticker]:
            return sess.get(Ticker, ticker_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_symbol(symbol: str, session: Optional[Session] = None) -> Optional[Ticker]:
        """Retrieve a ticker by symbol (case-insensitive)."""
        def _get_by_symbol(sess: Session) -> Optional[Ticker]:
            statement = select(Ticker).where(Ticker.symbol == normalize_symbol(symbol))
            return sess.exec(statement).first()

        if session is not None:
            return _get_by_symbol(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_symbol(session)

    @staticmethod
    def get_all(session: Optional[Session] = None) -> List[Ticker]:
        """Retrieve all tickers from the database."""
        def _get_all(sess: Session) -> List[Ticker]:
            return list(sess.exec(select(Ticker).order_by(Ticker.symbol)).all())

        if session is not None:
            return _get_all(session)
        else:
            with Session(get_engine()) as session:
                return _get_all(session)

    @staticmethod
    def get_by_asset(asset_id: int, session: Optional[Session] = None) -> List[Ticker]:
        """Retrieve the tickers attached to an asset."""
        def _get_by_asset(sess: Session) -> List[Ticker]:
            statement = select(Ticker).where(Ticker.asset_id == asset_id).order_by(Ticker.id)
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_by_asset(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_asset(session)

    @staticmethod
    def get_or_create(
        symbol: str,
        currency: str,
        exchange: str = "",
        name: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Ticker:
        """Return the ticker for ``symbol``, creating it on first reference."""
        def _get_or_create(sess: Session) -> Ticker:
            ticker = TickerRepository.get_by_symbol(symbol, session=sess)
            if ticker:
                return ticker
            return TickerRepository.add(symbol, currency, exchange=exchange, name=name, session=sess)

        if session is not None:
            return _get_or_create(session)
        else:
            with Session(get_engine()) as session:
                return _get_or_create(session)

    @staticmethod
    def update_price(
        ticker_id: int,
        price: Decimal,
        updated_at: Optional[datetime] = None,
        session: Optional[Session] = None
    ) -> Optional[Ticker]:
        """
        Store a new last price for a ticker.

        Args:
            ticker_id: Ticker ID to update
            price: New last price
            updated_at: Quote timestamp (default: now); stored as naive UTC
            session: Optional existing session for transaction reuse

        Returns:
            Updated Ticker object or None if not found

        Raises:
            StalePriceError: ``updated_at`` precedes the stored timestamp
        """
        def _update(sess: Session) -> Optional[Ticker]:
            ticker = sess.get(Ticker, ticker_id)
            if not ticker:
                return None
            quoted_at = to_naive_utc(updated_at)
            if ticker.last_price_updated_at is not None and quoted_at < ticker.last_price_updated_at:
                raise StalePriceError(
                    f"Price for {ticker.symbol} at {quoted_at} is older than stored {ticker.last_price_updated_at}"
                )
            ticker.last_price = to_decimal(price, "price")
            ticker.last_price_updated_at = quoted_at
            ticker.updated_at = datetime.now()
            sess.add(ticker)
            sess.commit()
            sess.refresh(ticker)
            return ticker

        if session is not None:
            return _update(session)
        else:
            with Session(get_engine()) as session:
                return _update(session)
