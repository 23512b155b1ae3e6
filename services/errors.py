"""
Error taxonomy for the ledger.
Every error is fatal to the operation that raised it; nothing is recovered
silently and no partial replay result is ever returned.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger failures."""

    def __init__(self, message: str, transaction_no: Optional[int] = None):
        super().__init__(message)
        self.transaction_no = transaction_no


class OutOfOrderError(LedgerError):
    """A transaction number is not strictly greater than its predecessor's."""


class OversellError(LedgerError):
    """A SELL asks for more units than are currently held."""


class InvalidTypeError(LedgerError, ValueError):
    """The transaction type is not one of BUY, SELL or DIVIDEND."""


class InvalidEntryError(LedgerError, ValueError):
    """A raw field is missing, negative or otherwise unusable."""


class StaleLedgerError(LedgerError):
    """The scope's transactions changed between load and save."""


class TickerLimitError(LedgerError):
    """An asset already references the maximum number of tickers."""


class StalePriceError(LedgerError):
    """A price update is older than the price already stored."""


class ImportFormatError(LedgerError, ValueError):
    """A CSV import file is malformed."""

    def __init__(self, message: str, row: Optional[int] = None):
        super().__init__(message)
        self.row = row
