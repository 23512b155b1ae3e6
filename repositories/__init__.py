"""
Repositories package for FolioLedger.
Provides data access layer for all database operations.
"""

from repositories.asset_repository import AssetRepository
from repositories.ticker_repository import TickerRepository
from repositories.transaction_repository import (
    LedgerScope,
    ScopeKind,
    TransactionRepository,
)

__all__ = [
    'AssetRepository',
    'TickerRepository',
    'TransactionRepository',
    'LedgerScope',
    'ScopeKind',
]
