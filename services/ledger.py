"""
Ledger accounting engine.
Replays an ordered transaction stream for one accounting scope and derives
running units, cost basis, cost of units sold, realized gains and dividends
using the average-cost method.

The replay is a pure function: it performs no I/O, never mutates its input
and yields identical results for identical input.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from typing import Any, Iterable, List, Optional

from config import get_settings
from models import TransactionType
from services.common import parse_transaction_type, to_decimal
from services.errors import InvalidEntryError, OutOfOrderError, OversellError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerEntry:
    """
    Raw fields of one transaction, as recorded.
    ``transaction_type`` may be the enum or its stored text; it is validated
    when the entry is replayed.
    """
    transaction_no: int
    transaction_type: Any
    quantity: Any
    price: Any
    fees: Any = ZERO
    date: Optional[datetime] = None
    ticker_id: Optional[int] = None
    broker: str = ""
    currency: str = ""
    exchange_rate: Any = Decimal("1")
    id: Optional[int] = None  # Row id when loaded from storage

    @classmethod
    def from_transaction(cls, tx: Any) -> "LedgerEntry":
        """Build an entry from a stored Transaction (or any object with the same fields)."""
        return cls(
            transaction_no=tx.transaction_no,
            transaction_type=tx.transaction_type,
            quantity=tx.quantity,
            price=tx.price,
            fees=tx.fees,
            date=getattr(tx, 'date', None),
            ticker_id=getattr(tx, 'ticker_id', None),
            broker=getattr(tx, 'broker', ""),
            currency=getattr(tx, 'currency', ""),
            exchange_rate=getattr(tx, 'exchange_rate', Decimal("1")),
            id=getattr(tx, 'id', None),
        )


@dataclass(frozen=True)
class DerivedFields:
    """Running fields computed for one transaction."""
    cumulative_units: Decimal
    cumulative_cost: Decimal
    cost_of_units_sold: Decimal
    realized_gains: Decimal
    dividends_collected: Decimal


@dataclass(frozen=True)
class AnnotatedEntry:
    """A raw entry paired with its derived fields."""
    entry: LedgerEntry
    derived: DerivedFields

    @property
    def transaction_no(self) -> int:
        return self.entry.transaction_no

    @property
    def cumulative_units(self) -> Decimal:
        return self.derived.cumulative_units

    @property
    def cumulative_cost(self) -> Decimal:
        return self.derived.cumulative_cost

    @property
    def cost_of_units_sold(self) -> Decimal:
        return self.derived.cost_of_units_sold

    @property
    def realized_gains(self) -> Decimal:
        return self.derived.realized_gains

    @property
    def dividends_collected(self) -> Decimal:
        return self.derived.dividends_collected


@dataclass
class LedgerState:
    """In-memory replay state; discarded after each pass."""
    units: Decimal = ZERO
    cost_basis: Decimal = ZERO
    realized: Decimal = ZERO
    dividends: Decimal = ZERO
    last_transaction_no: Optional[int] = None
    entries_applied: int = 0

    @property
    def average_cost(self) -> Decimal:
        """Blended cost per held unit (zero when flat)."""
        if self.units == ZERO:
            return ZERO
        return self.cost_basis / self.units


@dataclass(frozen=True)
class _Validated:
    transaction_no: int
    kind: TransactionType
    quantity: Decimal
    price: Decimal
    fees: Decimal


def _validate(entry: LedgerEntry) -> _Validated:
    """Parse and check the raw fields of an entry."""
    no = entry.transaction_no
    if isinstance(no, bool) or not isinstance(no, int):
        raise InvalidEntryError(f"transaction_no must be an integer, got {no!r}")

    kind = parse_transaction_type(entry.transaction_type, no)
    quantity = to_decimal(entry.quantity, "quantity", no)
    price = to_decimal(entry.price, "price", no)
    fees = to_decimal(entry.fees if entry.fees is not None else ZERO, "fees", no)

    for name, value in (("quantity", quantity), ("price", price), ("fees", fees)):
        if value < ZERO:
            raise InvalidEntryError(f"Transaction {no}: {name} must not be negative ({value})", no)
    if kind in (TransactionType.BUY, TransactionType.SELL) and quantity == ZERO:
        raise InvalidEntryError(f"Transaction {no}: {kind.name} quantity must be positive", no)

    return _Validated(no, kind, quantity, price, fees)


def dividend_amount(quantity: Decimal, price: Decimal) -> Decimal:
    """
    Cash received for a dividend row.

    Dividends are recorded as a per-unit amount times the units paid; a row
    with zero quantity carries the total amount in ``price``.
    """
    if quantity == ZERO:
        return price
    return price * quantity


def apply(state: LedgerState, entry: LedgerEntry) -> DerivedFields:
    """
    Apply one entry to the replay state in place and return its derived fields.
    Must run inside the decimal context set up by ``replay``.

    Raises:
        OutOfOrderError: transaction_no not strictly above the previous one
        OversellError: SELL quantity above the units held
        InvalidTypeError / InvalidEntryError: unusable raw fields
    """
    tx = _validate(entry)

    if state.last_transaction_no is not None and tx.transaction_no <= state.last_transaction_no:
        raise OutOfOrderError(
            f"Transaction {tx.transaction_no} follows {state.last_transaction_no}; "
            f"sequence numbers must be strictly increasing",
            tx.transaction_no
        )

    cost_of_units_sold = ZERO

    if tx.kind is TransactionType.BUY:
        state.units += tx.quantity
        state.cost_basis += tx.quantity * tx.price + tx.fees

    elif tx.kind is TransactionType.SELL:
        if state.units == ZERO or tx.quantity > state.units:
            raise OversellError(
                f"Transaction {tx.transaction_no} sells {tx.quantity} units but only {state.units} are held",
                tx.transaction_no
            )
        if tx.quantity == state.units:
            # Closing sale takes the whole remaining basis, so no division residue survives
            cost_of_units_sold = state.cost_basis
        else:
            cost_of_units_sold = tx.quantity * (state.cost_basis / state.units)
        state.realized += tx.quantity * tx.price - cost_of_units_sold - tx.fees
        state.units -= tx.quantity
        state.cost_basis -= cost_of_units_sold

    else:
        state.dividends += dividend_amount(tx.quantity, tx.price)

    state.last_transaction_no = tx.transaction_no
    state.entries_applied += 1

    return DerivedFields(
        cumulative_units=state.units,
        cumulative_cost=state.cost_basis,
        cost_of_units_sold=cost_of_units_sold,
        realized_gains=state.realized,
        dividends_collected=state.dividends,
    )


def _as_entry(item: Any) -> LedgerEntry:
    if isinstance(item, LedgerEntry):
        return item
    return LedgerEntry.from_transaction(item)


def replay(ordered_transactions: Iterable[Any], precision: Optional[int] = None) -> List[AnnotatedEntry]:
    """
    Replay an ordered transaction sequence and annotate every element.

    Args:
        ordered_transactions: LedgerEntry objects (or stored Transactions) for a
            single scope, ordered by transaction_no ascending
        precision: Significant digits for the decimal context
            (default: ``decimal_precision`` setting)

    Returns:
        List of AnnotatedEntry in input order

    Raises:
        OutOfOrderError, OversellError, InvalidTypeError, InvalidEntryError.
        On any failure no partial result is returned.
    """
    entries = [_as_entry(item) for item in ordered_transactions]
    state = LedgerState()
    annotated: List[AnnotatedEntry] = []

    with localcontext() as ctx:
        ctx.prec = precision or get_settings().decimal_precision
        ctx.rounding = ROUND_HALF_EVEN
        for entry in entries:
            derived = apply(state, entry)
            logger.debug(
                f"#{entry.transaction_no}: units={derived.cumulative_units} "
                f"cost={derived.cumulative_cost} realized={derived.realized_gains}"
            )
            annotated.append(AnnotatedEntry(entry=entry, derived=derived))

    return annotated


def replay_summary(ordered_transactions: Iterable[Any], precision: Optional[int] = None) -> LedgerState:
    """
    Replay a sequence and return only the final state.

    Returns:
        LedgerState after the last transaction (empty state for no input)
    """
    annotated = replay(ordered_transactions, precision=precision)
    if not annotated:
        return LedgerState()
    last = annotated[-1]
    return LedgerState(
        units=last.cumulative_units,
        cost_basis=last.cumulative_cost,
        realized=last.realized_gains,
        dividends=last.dividends_collected,
        last_transaction_no=last.transaction_no,
        entries_applied=len(annotated),
    )

