"""
Common utilities and shared functions.
Decimal coercion, transaction type parsing and symbol normalization.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any, Optional, Tuple

from models import TransactionType
from services.errors import InvalidEntryError, InvalidTypeError

logger = logging.getLogger(__name__)


def to_decimal(value: Any, field: str = "value", transaction_no: Optional[int] = None) -> Decimal:
    """
    Convert a raw numeric value to Decimal without passing through binary float.

    Floats are converted from their shortest repr, so ``0.1`` becomes
    ``Decimal("0.1")`` rather than the exact binary expansion.

    Args:
        value: Decimal, int, float or numeric string
        field: Field name used in error messages
        transaction_no: Offending transaction number, if known

    Returns:
        The value as a finite Decimal

    Examples:
        >>> to_decimal("100.10")
        Decimal('100.10')
        >>> to_decimal(0.1)
        Decimal('0.1')
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise InvalidEntryError(f"{field} must be numeric, got {value!r}", transaction_no)
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip().replace(",", ""))
        except InvalidOperation:
            raise InvalidEntryError(f"{field} is not a number: {value!r}", transaction_no) from None

    if not result.is_finite():
        raise InvalidEntryError(f"{field} must be finite, got {value!r}", transaction_no)
    return result


def parse_transaction_type(value: Any, transaction_no: Optional[int] = None) -> TransactionType:
    """
    Resolve a transaction type from its enum member or stored text.

    Raises:
        InvalidTypeError: for anything outside BUY, SELL and DIVIDEND
    """
    if isinstance(value, TransactionType):
        return value
    if not isinstance(value, str):
        raise InvalidTypeError(f"Unrecognized transaction type: {value!r}", transaction_no)
    try:
        return TransactionType.parse(value)
    except ValueError:
        raise InvalidTypeError(f"Unrecognized transaction type: {value!r}", transaction_no) from None


def normalize_symbol(symbol: str) -> str:
    """
    Normalize a ticker symbol for storage and lookup.

    Examples:
        >>> normalize_symbol(" vow3.de ")
        'VOW3.DE'
    """
    return symbol.strip().upper()


def split_symbol(symbol: str) -> Tuple[str, str]:
    """
    Split an exchange-qualified symbol into (symbol, exchange suffix).

    Examples:
        >>> split_symbol("VOW3.DE")
        ('VOW3', 'DE')
        >>> split_symbol("AAPL")
        ('AAPL', '')
    """
    base, _, exchange = normalize_symbol(symbol).partition(".")
    return base, exchange


def normalize_currency(currency: Optional[str], default: str = "USD") -> str:
    """Return an upper-case ISO 4217 code, falling back to ``default``."""
    if not currency or not str(currency).strip():
        return default.upper()
    code = str(currency).strip().upper()
    if len(code) != 3 or not code.isalpha():
        logger.warning(f"Unusual currency code: {currency}, keeping as-is")
    return code


def quantize(value: Decimal, places: int) -> Decimal:
    """
    Round a Decimal to a fixed number of places for display (banker's rounding).

    Examples:
        >>> quantize(Decimal("197.6049"), 2)
        Decimal('197.60')
    """
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)


def to_naive_utc(value: Optional[datetime] = None) -> datetime:
    """
    Express a timestamp as naive UTC, the form SQLite hands back.
    Aware values are converted; naive values are taken to be UTC already.
    ``None`` means now.
    """
    if value is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    if value.tzinfo is not None and value.utcoffset() is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
