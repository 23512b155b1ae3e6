"""
Portfolio service for recomputing ledgers and summarizing holdings.
Each scope is replayed from scratch and its derived fields are persisted in a
single commit; holdings are valued per scope with the last stored ticker price.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Dict, Optional

import pandas as pd
from sqlmodel import Session

from config import get_settings
from db_engine import get_engine
from models import Asset, Ticker
from repositories import AssetRepository, LedgerScope, ScopeKind, TickerRepository, TransactionRepository
from services.common import quantize
from services.ledger import AnnotatedEntry, LedgerState, replay, replay_summary

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class PortfolioService:
    """
    Service for ledger recomputation and holdings analysis.
    No currency conversion is applied; values stay in each ticker's currency.
    """

    @staticmethod
    def scope_for(ticker: Ticker) -> LedgerScope:
        """Scope a ticker's transactions belong to under the configured ledger layout."""
        if get_settings().ledger_scope == "asset" and ticker.asset_id is not None:
            return LedgerScope.asset(ticker.asset_id)
        return LedgerScope.ticker(ticker.id)

    @staticmethod
    def list_scopes(session: Optional[Session] = None) -> List[LedgerScope]:
        """All distinct scopes that currently hold at least one ticker."""
        tickers = TickerRepository.get_all(session=session)
        scopes: List[LedgerScope] = []
        for ticker in tickers:
            scope = PortfolioService.scope_for(ticker)
            if scope not in scopes:
                scopes.append(scope)
        return scopes

    @staticmethod
    def recompute(
        scope: LedgerScope,
        commit: bool = True,
        session: Optional[Session] = None
    ) -> List[AnnotatedEntry]:
        """
        Replay a scope from its raw transactions and persist the derived fields.

        Args:
            scope: Ticker or asset scope to recompute
            commit: Commit the derived fields; False leaves them flushed
                inside the caller's transaction
            session: Optional existing session for transaction reuse

        Returns:
            The annotated entries that were saved

        Raises:
            LedgerError subclasses from the replay or the save; nothing is
            written unless the whole scope replays successfully
        """
        def _recompute(sess: Session) -> List[AnnotatedEntry]:
            transactions = TransactionRepository.load_ordered(scope, session=sess)
            annotated = replay(transactions)
            TransactionRepository.save_derived(scope, annotated, commit=commit, session=sess)
            logger.info(f"Recomputed {len(annotated)} transactions for scope {scope}")
            return annotated

        if session is not None:
            return _recompute(session)
        else:
            with Session(get_engine()) as session:
                return _recompute(session)

    @staticmethod
    def recompute_ticker(ticker_id: int, session: Optional[Session] = None) -> List[AnnotatedEntry]:
        """Recompute whichever scope the given ticker belongs to."""
        ticker = TickerRepository.get_by_id(ticker_id, session=session)
        if ticker is None:
            raise ValueError(f"Unknown ticker {ticker_id}")
        return PortfolioService.recompute(PortfolioService.scope_for(ticker), session=session)

    @staticmethod
    def recompute_all(session: Optional[Session] = None) -> Dict[str, int]:
        """
        Recompute every scope.
        Stops at the first failing scope; scopes already saved stay saved.

        Returns:
            Mapping of scope label to number of transactions replayed
        """
        counts = {}
        for scope in PortfolioService.list_scopes(session=session):
            counts[str(scope)] = len(PortfolioService.recompute(scope, session=session))
        return counts

    @staticmethod
    def get_scope_holding(scope: LedgerScope, session: Optional[Session] = None) -> Dict:
        """
        Calculate the holding of one ledger scope from its replayed transactions.

        A ticker scope is priced with the ticker's own last price. An asset
        scope covers every listing of the asset and is priced with the most
        recently updated last price among them.

        Args:
            scope: Ticker or asset scope to value
            session: Optional existing session for transaction reuse

        Returns:
            Dictionary with quantity, cost, realized/unrealized gains and
            dividends; valuation fields are None when no price is stored

        Raises:
            ValueError: the scope's ticker or asset does not exist
        """
        def _holding(sess: Session) -> Dict:
            if scope.kind == ScopeKind.TICKER:
                ticker = TickerRepository.get_by_id(scope.key, session=sess)
                if ticker is None:
                    raise ValueError(f"Unknown ticker {scope.key}")
                tickers = [ticker]
                asset_id = ticker.asset_id
            else:
                tickers = TickerRepository.get_by_asset(scope.key, session=sess)
                asset_id = scope.key

            asset = AssetRepository.get_by_id(asset_id, session=sess) if asset_id is not None else None
            if scope.kind == ScopeKind.ASSET and asset is None:
                raise ValueError(f"Unknown asset {scope.key}")

            state = replay_summary(TransactionRepository.load_ordered(scope, session=sess))
            return _build_holding(scope, tickers, asset, state)

        if session is not None:
            return _holding(session)
        else:
            with Session(get_engine()) as session:
                return _holding(session)

    @staticmethod
    def get_ticker_holding(ticker: Ticker, session: Optional[Session] = None) -> Dict:
        """Holding of the ledger a ticker belongs to (the whole asset under asset scope)."""
        return PortfolioService.get_scope_holding(PortfolioService.scope_for(ticker), session=session)

    @staticmethod
    def get_positions(include_closed: bool = False, session: Optional[Session] = None) -> List[Dict]:
        """
        Holdings for every ledger scope, one row per scope.

        Args:
            include_closed: Also report scopes whose units are back to zero
            session: Optional existing session for transaction reuse

        Returns:
            List of holding dictionaries ordered by symbol
        """
        def _positions(sess: Session) -> List[Dict]:
            positions = []
            for scope in PortfolioService.list_scopes(session=sess):
                holding = PortfolioService.get_scope_holding(scope, session=sess)
                if holding['quantity'] > 0 or (include_closed and _has_activity(holding)):
                    positions.append(holding)
            return positions

        if session is not None:
            return _positions(session)
        else:
            with Session(get_engine()) as session:
                return _positions(session)

    @staticmethod
    def positions_frame(include_closed: bool = False, session: Optional[Session] = None) -> pd.DataFrame:
        """Holdings as a DataFrame indexed by symbol."""
        positions = PortfolioService.get_positions(include_closed=include_closed, session=session)
        columns = [
            'symbol', 'asset_name', 'currency', 'quantity', 'price', 'market_value',
            'cost_per_share', 'total_cost', 'unrealized_gain', 'unrealized_gain_pct',
            'realized_gain', 'dividends_collected', 'total_gain',
        ]
        df = pd.DataFrame(positions, columns=columns)
        return df.set_index('symbol')

    @staticmethod
    def get_summary(session: Optional[Session] = None) -> Dict:
        """
        Portfolio totals per currency.

        Returns:
            Mapping of currency to totals of cost, value, realized/unrealized
            gains and dividends (closed positions contribute realized gains and
            dividends)
        """
        money = get_settings().money_places
        totals: Dict[str, Dict[str, Decimal]] = {}
        for holding in PortfolioService.get_positions(include_closed=True, session=session):
            bucket = totals.setdefault(holding['currency'], {
                'total_cost': Decimal("0"),
                'market_value': Decimal("0"),
                'unrealized_gain': Decimal("0"),
                'realized_gain': Decimal("0"),
                'dividends_collected': Decimal("0"),
                'unvalued_positions': 0,
            })
            bucket['total_cost'] += holding['total_cost']
            bucket['realized_gain'] += holding['realized_gain']
            bucket['dividends_collected'] += holding['dividends_collected']
            if holding['market_value'] is None:
                if holding['quantity'] > 0:
                    bucket['unvalued_positions'] += 1
                continue
            bucket['market_value'] += holding['market_value']
            bucket['unrealized_gain'] += holding['unrealized_gain']

        for bucket in totals.values():
            bucket['total_gain'] = quantize(bucket['realized_gain'] + bucket['unrealized_gain'], money)
        return totals


def _has_activity(holding: Dict) -> bool:
    return any(holding[key] != 0 for key in ('realized_gain', 'dividends_collected', 'total_cost'))


def _quote_source(tickers: List[Ticker]) -> Optional[Ticker]:
    """The ticker with the most recently stored price, if any has one."""
    priced = [t for t in tickers if t.last_price is not None]
    if not priced:
        return None
    return max(priced, key=lambda t: t.last_price_updated_at or datetime.min)


def _build_holding(scope: LedgerScope, tickers: List[Ticker], asset: Optional[Asset], state: LedgerState) -> Dict:
    settings = get_settings()
    money = settings.money_places
    quote = _quote_source(tickers)
    if quote is not None:
        currency = quote.currency
    else:
        currency = tickers[0].currency if tickers else settings.default_currency

    holding = {
        'scope': str(scope),
        'ticker_id': scope.key if scope.kind == ScopeKind.TICKER else None,
        'symbol': '/'.join(t.symbol for t in tickers),
        'asset_name': asset.name if asset else None,
        'currency': currency,
        'quantity': quantize(state.units, settings.units_places),
        'price': quote.last_price if quote else None,
        'cost_per_share': quantize(state.average_cost, money),
        'total_cost': quantize(state.cost_basis, money),
        'realized_gain': quantize(state.realized, money),
        'dividends_collected': quantize(state.dividends, money),
        'market_value': None,
        'unrealized_gain': None,
        'unrealized_gain_pct': None,
        'total_gain': None,
    }

    if quote is None:
        if state.units > 0:
            logger.warning(f"No stored price for {holding['symbol']}; holding left unvalued")
        return holding

    market_value = quote.last_price * state.units
    unrealized = market_value - state.cost_basis
    unrealized_pct = (unrealized / state.cost_basis * HUNDRED) if state.cost_basis > 0 else Decimal("0")

    holding.update({
        'market_value': quantize(market_value, money),
        'unrealized_gain': quantize(unrealized, money),
        'unrealized_gain_pct': quantize(unrealized_pct, 2),
        'total_gain': quantize(state.realized + unrealized, money),
    })
    return holding
