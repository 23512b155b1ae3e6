"""
Transaction Repository - data access layer for Transaction model.
Optimized with optional session parameter for transaction reuse.
Provides the ordered load / atomic derived-field save used by the ledger.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Sequence
from sqlalchemy import func
from sqlmodel import Session, select

from db_engine import get_engine
from models import Ticker, Transaction, TransactionType
from services.common import parse_transaction_type, to_decimal
from services.errors import StaleLedgerError


class ScopeKind(str, Enum):
    """Grouping key over which running totals are kept."""
    TICKER = "ticker"
    ASSET = "asset"


@dataclass(frozen=True)
class LedgerScope:
    """One independent ledger: a single ticker, or every ticker of an asset."""
    kind: ScopeKind
    key: int

    @classmethod
    def ticker(cls, ticker_id: int) -> "LedgerScope":
        return cls(ScopeKind.TICKER, ticker_id)

    @classmethod
    def asset(cls, asset_id: int) -> "LedgerScope":
        return cls(ScopeKind.ASSET, asset_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


def _replayed_from(tx: Transaction, entry) -> bool:
    """Whether a stored row still holds the raw fields an entry was replayed from."""
    if entry.ticker_id is not None and entry.ticker_id != tx.ticker_id:
        return False
    fees = entry.fees if entry.fees is not None else Decimal("0")
    return (
        parse_transaction_type(entry.transaction_type).value == tx.transaction_type
        and to_decimal(entry.quantity) == tx.quantity
        and to_decimal(entry.price) == tx.price
        and to_decimal(fees) == tx.fees
    )


class TransactionRepository:
    """Repository for Transaction CRUD operations."""

    @staticmethod
    def add(
        transaction_no: int,
        date: datetime,
        transaction_type: TransactionType,
        ticker_id: int,
        broker: str,
        currency: str,
        quantity: Decimal,
        price: Decimal,
        fees: Decimal = Decimal("0"),
        exchange_rate: Decimal = Decimal("1"),
        commit: bool = True,
        session: Optional[Session] = None
    ) -> Transaction:
        """
        Add a new transaction to the database.
        Derived fields start at zero until the scope is recomputed.

        Args:
            transaction_no: Globally unique sequence number
            date: Date of the transaction
            transaction_type: BUY, SELL or DIVIDEND
            ticker_id: Ticker the transaction refers to
            broker: Broker name
            currency: Currency of price and fees
            quantity: Number of units
            price: Price per unit (or dividend per unit)
            fees: Fees paid
            exchange_rate: Rate to the reporting currency, carried as-is
            commit: Commit immediately; False only flushes so an import can
                stage all of its rows in one transaction
            session: Optional existing session for transaction reuse

        Returns:
            Created Transaction object
        """
        def _create_transaction(sess: Session) -> Transaction:
            transaction = Transaction(
                transaction_no=transaction_no,
                date=date,
                transaction_type=TransactionType.parse(transaction_type).value,
                ticker_id=ticker_id,
                broker=broker,
                currency=currency,
                exchange_rate=exchange_rate,
                quantity=quantity,
                price=price,
                fees=fees
            )
            sess.add(transaction)
            if commit:
                sess.commit()
                sess.refresh(transaction)
            else:
                sess.flush()
            return transaction

        if session is not None:
            return _create_transaction(session)
        else:
            with Session(get_engine()) as session:
                return _create_transaction(session)

    @staticmethod
    def get_by_id(transaction_id: int, session: Optional[Session] = None) -> Optional[Transaction]:
        """Retrieve a transaction by its ID."""
        def _get_by_id(sess: Session) -> Optional[Transaction]:
            return sess.get(Transaction, transaction_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_ticker(ticker_id: int, session: Optional[Session] = None) -> List[Transaction]:
        """Retrieve all transactions for a ticker, ordered by transaction number."""
        return TransactionRepository.load_ordered(LedgerScope.ticker(ticker_id), session=session)

    @staticmethod
    def get_all(session: Optional[Session] = None) -> List[Transaction]:
        """Retrieve all transactions, ordered by transaction number."""
        def _get_all(sess: Session) -> List[Transaction]:
            statement = select(Transaction).order_by(Transaction.transaction_no)
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_all(session)
        else:
            with Session(get_engine()) as session:
                return _get_all(session)

    @staticmethod
    def next_transaction_no(session: Optional[Session] = None) -> int:
        """Return the transaction number following the highest one stored."""
        def _next(sess: Session) -> int:
            current = sess.exec(select(func.max(Transaction.transaction_no))).one()
            return (current or 0) + 1

        if session is not None:
            return _next(session)
        else:
            with Session(get_engine()) as session:
                return _next(session)

    @staticmethod
    def load_ordered(scope: LedgerScope, session: Optional[Session] = None) -> List[Transaction]:
        """
        Load the raw transactions of a scope ordered by transaction number.

        Args:
            scope: Ticker or asset scope
            session: Optional existing session for transaction reuse

        Returns:
            List of Transaction objects, ascending transaction_no
        """
        def _load(sess: Session) -> List[Transaction]:
            statement = select(Transaction)
            if scope.kind == ScopeKind.TICKER:
                statement = statement.where(Transaction.ticker_id == scope.key)
            else:
                statement = statement.join(Ticker, Ticker.id == Transaction.ticker_id).where(
                    Ticker.asset_id == scope.key
                )
            statement = statement.order_by(Transaction.transaction_no)
            return list(sess.exec(statement).all())

        if session is not None:
            return _load(session)
        else:
            with Session(get_engine()) as session:
                return _load(session)

    @staticmethod
    def save_derived(
        scope: LedgerScope,
        annotated: Sequence,
        commit: bool = True,
        session: Optional[Session] = None
    ) -> bool:
        """
        Write the derived running fields of a fully replayed scope in one commit.

        Every stored row of the scope must be present in ``annotated`` with the
        raw fields it was replayed from; if the scope gained, lost or edited
        rows since it was loaded nothing is written.

        Args:
            scope: Scope the annotations were computed for
            annotated: AnnotatedEntry objects from the ledger replay
            commit: Commit on success; False only flushes and leaves the
                commit to the caller
            session: Optional existing session for transaction reuse

        Returns:
            True once all rows are written

        Raises:
            StaleLedgerError: the stored scope no longer matches the replay
        """
        def _save(sess: Session) -> bool:
            try:
                rows = {tx.transaction_no: tx for tx in TransactionRepository.load_ordered(scope, session=sess)}
                replayed = [item.transaction_no for item in annotated]
                if sorted(rows) != sorted(replayed):
                    raise StaleLedgerError(
                        f"Scope {scope} has {len(rows)} stored transactions but {len(replayed)} were replayed"
                    )

                for item in annotated:
                    if not _replayed_from(rows[item.transaction_no], item.entry):
                        raise StaleLedgerError(
                            f"Transaction {item.transaction_no} in scope {scope} changed since it was replayed",
                            item.transaction_no
                        )

                now = datetime.now()
                for item in annotated:
                    tx = rows[item.transaction_no]
                    tx.cumulative_units = item.cumulative_units
                    tx.cumulative_cost = item.cumulative_cost
                    tx.cost_of_units_sold = item.cost_of_units_sold
                    tx.realized_gains = item.realized_gains
                    tx.dividends_collected = item.dividends_collected
                    tx.updated_at = now
                    sess.add(tx)
                if commit:
                    sess.commit()
                else:
                    sess.flush()
                return True
            except Exception as e:
                sess.rollback()
                raise e

        if session is not None:
            return _save(session)
        else:
            with Session(get_engine()) as session:
                return _save(session)

    @staticmethod
    def delete(transaction_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete a transaction by its ID.
        Later rows of the same scope keep stale derived fields until recomputed.

        Returns:
            True if a row was deleted, False if it did not exist
        """
        def _delete(sess: Session) -> bool:
            try:
                transaction = sess.get(Transaction, transaction_id)
                if transaction:
                    sess.delete(transaction)
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
