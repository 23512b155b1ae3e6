"""
Services package for FolioLedger.
Provides core business logic separated from the data layer.

PortfolioService and TransactionImporter depend on the repositories and are
imported from their modules directly (services.portfolio, services.importer).
"""

from services.errors import (
    LedgerError,
    OutOfOrderError,
    OversellError,
    InvalidTypeError,
    InvalidEntryError,
    StaleLedgerError,
    TickerLimitError,
    StalePriceError,
    ImportFormatError,
)
from services.common import (
    to_decimal,
    parse_transaction_type,
    normalize_symbol,
    split_symbol,
    normalize_currency,
    quantize,
    to_naive_utc,
)
from services.ledger import (
    LedgerEntry,
    DerivedFields,
    AnnotatedEntry,
    LedgerState,
    replay,
    replay_summary,
)

__all__ = [
    # Errors
    'LedgerError',
    'OutOfOrderError',
    'OversellError',
    'InvalidTypeError',
    'InvalidEntryError',
    'StaleLedgerError',
    'TickerLimitError',
    'StalePriceError',
    'ImportFormatError',
    # Common utilities
    'to_decimal',
    'parse_transaction_type',
    'normalize_symbol',
    'split_symbol',
    'normalize_currency',
    'quantize',
    'to_naive_utc',
    # Ledger engine
    'LedgerEntry',
    'DerivedFields',
    'AnnotatedEntry',
    'LedgerState',
    'replay',
    'replay_summary',
]
