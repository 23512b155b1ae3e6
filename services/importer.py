"""
Transaction importer.
Loads a broker CSV export into the ledger, creating tickers and assets on
first reference, then recomputes every scope the import touched.

Expected header (extra columns are ignored):
    date,type,symbol,quantity,price,fees,broker[,currency,exchange_rate,exchange,name]
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import IO, List, Optional, Union

import pandas as pd
from sqlmodel import Session

from config import get_settings
from db_engine import get_engine
from models import TransactionType
from repositories import AssetRepository, LedgerScope, TickerRepository, TransactionRepository
from services.common import normalize_currency, normalize_symbol, parse_transaction_type, split_symbol, to_decimal
from services.errors import ImportFormatError, InvalidEntryError, InvalidTypeError
from services.portfolio import PortfolioService

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['date', 'type', 'symbol', 'quantity', 'price', 'fees', 'broker']


@dataclass
class ImportRow:
    """One validated CSV row."""
    row: int  # 1-based data row number
    date: datetime
    transaction_type: TransactionType
    symbol: str
    quantity: Decimal
    price: Decimal
    fees: Decimal
    broker: str
    currency: str
    exchange_rate: Decimal
    exchange: str
    name: str


@dataclass
class ImportResult:
    """Outcome of an import run."""
    imported: int = 0
    tickers_created: List[str] = field(default_factory=list)
    assets_created: List[str] = field(default_factory=list)
    scopes_recomputed: List[str] = field(default_factory=list)


class TransactionImporter:
    """Imports transaction CSV files into the ledger."""

    def __init__(self, default_currency: Optional[str] = None):
        """
        Args:
            default_currency: Currency used when a row has none
                (default: ``default_currency`` setting)
        """
        self.default_currency = default_currency or get_settings().default_currency

    def read_rows(self, source: Union[str, IO]) -> List[ImportRow]:
        """
        Read and validate every row of a CSV file without touching the database.

        Args:
            source: Path or file-like object

        Returns:
            List of ImportRow in file order

        Raises:
            ImportFormatError: missing columns, bad dates or numbers
            InvalidTypeError: unknown transaction type
        """
        df = pd.read_csv(source, dtype=str, keep_default_na=False, skipinitialspace=True)
        df.columns = [str(col).strip().lower() for col in df.columns]

        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise ImportFormatError(f"CSV is missing required columns: {', '.join(missing)}")

        dates = pd.to_datetime(df['date'], errors='coerce')

        rows = []
        for idx, record in enumerate(df.to_dict('records')):
            row_no = idx + 1
            if pd.isna(dates.iloc[idx]):
                raise ImportFormatError(f"Row {row_no}: cannot parse date {record['date']!r}", row=row_no)
            rows.append(self._parse_record(record, dates.iloc[idx].to_pydatetime(), row_no))

        logger.debug(f"Validated {len(rows)} CSV rows")
        return rows

    def _parse_record(self, record: dict, date: datetime, row_no: int) -> ImportRow:
        symbol = normalize_symbol(record['symbol'])
        if not symbol:
            raise ImportFormatError(f"Row {row_no}: symbol is empty", row=row_no)

        try:
            transaction_type = parse_transaction_type(record['type'])
        except InvalidTypeError as e:
            raise InvalidTypeError(f"Row {row_no}: {e}") from None

        try:
            quantity = to_decimal(record['quantity'], "quantity")
            price = to_decimal(record['price'], "price")
            fees = to_decimal(record['fees'] or "0", "fees")
            exchange_rate = to_decimal(record.get('exchange_rate') or "1", "exchange_rate")
        except InvalidEntryError as e:
            raise ImportFormatError(f"Row {row_no}: {e}", row=row_no) from None

        base_symbol, suffix = split_symbol(symbol)
        return ImportRow(
            row=row_no,
            date=date,
            transaction_type=transaction_type,
            symbol=symbol,
            quantity=quantity,
            price=price,
            fees=fees,
            broker=record['broker'].strip(),
            currency=normalize_currency(record.get('currency'), self.default_currency),
            exchange_rate=exchange_rate,
            exchange=(record.get('exchange') or suffix).strip(),
            name=(record.get('name') or base_symbol).strip(),
        )

    def import_csv(self, source: Union[str, IO], session: Optional[Session] = None) -> ImportResult:
        """
        Import a CSV file and recompute the affected ledgers.

        Rows are numbered after the highest stored transaction_no in file order.
        Every row is validated before any row is written, and the rows, new
        tickers and assets and recomputed derived fields are committed together.
        Any failure (e.g. an oversell or a full asset) rolls the whole import back.

        Args:
            source: Path or file-like object
            session: Optional existing session for transaction reuse

        Returns:
            ImportResult with counts and created symbols
        """
        rows = self.read_rows(source)

        def _import(sess: Session) -> ImportResult:
            result = ImportResult()
            scopes: List[LedgerScope] = []
            try:
                next_no = TransactionRepository.next_transaction_no(session=sess)

                for offset, row in enumerate(rows):
                    ticker = TickerRepository.get_by_symbol(row.symbol, session=sess)
                    if ticker is None:
                        ticker = TickerRepository.add(
                            row.symbol, row.currency, exchange=row.exchange, name=row.name,
                            commit=False, session=sess
                        )
                        result.tickers_created.append(ticker.symbol)

                    if ticker.asset_id is None:
                        asset = AssetRepository.get_by_name(row.name, session=sess)
                        if asset is None:
                            asset = AssetRepository.add(row.name, commit=False, session=sess)
                            result.assets_created.append(asset.name)
                        ticker = AssetRepository.attach_ticker(asset.id, ticker.id, commit=False, session=sess)

                    TransactionRepository.add(
                        transaction_no=next_no + offset,
                        date=row.date,
                        transaction_type=row.transaction_type,
                        ticker_id=ticker.id,
                        broker=row.broker,
                        currency=row.currency,
                        quantity=row.quantity,
                        price=row.price,
                        fees=row.fees,
                        exchange_rate=row.exchange_rate,
                        commit=False,
                        session=sess
                    )
                    result.imported += 1

                    scope = PortfolioService.scope_for(ticker)
                    if scope not in scopes:
                        scopes.append(scope)

                for scope in scopes:
                    PortfolioService.recompute(scope, commit=False, session=sess)
                    result.scopes_recomputed.append(str(scope))

                sess.commit()
            except Exception as e:
                sess.rollback()
                logger.error(f"Import aborted, nothing was stored: {e}")
                raise e

            logger.info(
                f"Imported {result.imported} transactions "
                f"({len(result.tickers_created)} new tickers, {len(scopes)} scopes recomputed)"
            )
            return result

        if session is not None:
            return _import(session)
        else:
            with Session(get_engine()) as session:
                return _import(session)
