"""
Asset Repository - data access layer for Asset model.
Optimized with optional session parameter for transaction reuse.
"""

from datetime import datetime
from typing import Optional, List
from sqlmodel import Session, select

from config import get_settings
from db_engine import get_engine
from models import Asset, AssetType, Ticker
from services.errors import TickerLimitError


class AssetRepository:
    """Repository for Asset CRUD operations."""

    @staticmethod
    def add(
        name: str,
        asset_type: Optional[AssetType] = None,
        isin: Optional[str] = None,
        sector: Optional[str] = None,
        industry: Optional[str] = None,
        commit: bool = True,
        session: Optional[Session] = None
    ) -> Asset:
        """
        Add a new asset to the database.

        Args:
            name: Unique asset name
            asset_type: Optional classification
            isin: Optional ISIN identifier
            sector: Optional sector
            industry: Optional industry
            commit: Commit immediately; False only flushes
            session: Optional existing session for transaction reuse

        Returns:
            Created Asset object
        """
        def _create_asset(sess: Session) -> Asset:
            asset = Asset(
                name=name.strip(),
                asset_type=asset_type,
                isin=isin,
                sector=sector,
                industry=industry
            )
            sess.add(asset)
            if commit:
                sess.commit()
                sess.refresh(asset)
            else:
                sess.flush()
            return asset

        if session is not None:
            return _create_asset(session)
        else:
            with Session(get_engine()) as session:
                return _create_asset(session)

    @staticmethod
    def get_all(session: Optional[Session] = None) -> List[Asset]:
        """Retrieve all assets from the database."""
        def _get_all(sess: Session) -> List[Asset]:
            statement = select(Asset).order_by(Asset.name)
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_all(session)
        else:
            with Session(get_engine()) as session:
                return _get_all(session)

    @staticmethod
    def get_by_id(asset_id: int, session: Optional[Session] = None) -> Optional[Asset]:
        """Retrieve an asset by its ID."""
        def _get_by_id(sess: Session) -> Optional[Asset]:
            return sess.get(Asset, asset_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_name(name: str, session: Optional[Session] = None) -> Optional[Asset]:
        """Retrieve an asset by its exact name."""
        def _get_by_name(sess: Session) -> Optional[Asset]:
            statement = select(Asset).where(Asset.name == name.strip())
            return sess.exec(statement).first()

        if session is not None:
            return _get_by_name(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_name(session)

    @staticmethod
    def get_or_create(
        name: str,
        asset_type: Optional[AssetType] = None,
        session: Optional[Session] = None
    ) -> Asset:
        """Return the asset called ``name``, creating it on first reference."""
        def _get_or_create(sess: Session) -> Asset:
            asset = AssetRepository.get_by_name(name, session=sess)
            if asset:
                return asset
            return AssetRepository.add(name, asset_type=asset_type, session=sess)

        if session is not None:
            return _get_or_create(session)
        else:
            with Session(get_engine()) as session:
                return _get_or_create(session)

    @staticmethod
    def update_classification(
        asset_id: int,
        asset_type: Optional[AssetType] = None,
        isin: Optional[str] = None,
        sector: Optional[str] = None,
        industry: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Optional[Asset]:
        """
        Update classification fields of an asset.
        Only updates fields that are provided (not None).

        Returns:
            Updated Asset object or None if not found
        """
        def _update(sess: Session) -> Optional[Asset]:
            asset = sess.get(Asset, asset_id)
            if asset:
                if asset_type is not None:
                    asset.asset_type = asset_type
                if isin is not None:
                    asset.isin = isin
                if sector is not None:
                    asset.sector = sector
                if industry is not None:
                    asset.industry = industry
                asset.updated_at = datetime.now()
                sess.add(asset)
                sess.commit()
                sess.refresh(asset)
                return asset
            return None

        if session is not None:
            return _update(session)
        else:
            with Session(get_engine()) as session:
                return _update(session)

    @staticmethod
    def attach_ticker(
        asset_id: int,
        ticker_id: int,
        commit: bool = True,
        session: Optional[Session] = None
    ) -> Ticker:
        """
        Make an asset the owner of a ticker.

        Args:
            asset_id: Owning asset
            ticker_id: Ticker to attach
            commit: Commit immediately; False only flushes
            session: Optional existing session for transaction reuse

        Returns:
            The updated Ticker

        Raises:
            TickerLimitError: the asset already has the maximum number of tickers
            ValueError: asset or ticker does not exist
        """
        limit = get_settings().max_tickers_per_asset

        def _attach(sess: Session) -> Ticker:
            asset = sess.get(Asset, asset_id)
            ticker = sess.get(Ticker, ticker_id)
            if asset is None or ticker is None:
                raise ValueError(f"Unknown asset {asset_id} or ticker {ticker_id}")
            if ticker.asset_id == asset_id:
                return ticker

            attached = sess.exec(select(Ticker).where(Ticker.asset_id == asset_id)).all()
            if len(attached) >= limit:
                raise TickerLimitError(
                    f"Asset '{asset.name}' already has {len(attached)} tickers (limit {limit})"
                )
            ticker.asset_id = asset_id
            ticker.updated_at = datetime.now()
            sess.add(ticker)
            if commit:
                sess.commit()
                sess.refresh(ticker)
            else:
                sess.flush()
            return ticker

        if session is not None:
            return _attach(session)
        else:
            with Session(get_engine()) as session:
                return _attach(session)

    @staticmethod
    def delete(asset_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete an asset.
        Its tickers (and their transactions) are kept and simply detached.

        Returns:
            True if successful, False otherwise
        """
        def _delete(sess: Session) -> bool:
            try:
                tickers = sess.exec(select(Ticker).where(Ticker.asset_id == asset_id)).all()
                for ticker in tickers:
                    ticker.asset_id = None
                    sess.add(ticker)

                asset = sess.get(Asset, asset_id)
                if asset:
                    sess.delete(asset)
                    sess.commit()
                    return True
                return False
            except Exception as e:
                sess.rollback()
                raise e

        if session is not None:
            return _delete(session)
        else:
            with Session(get_engine()) as session:
                return _delete(session)
