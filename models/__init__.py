"""
Database models for FolioLedger.
All SQLModel table definitions are centralized here.
"""

from models.asset import Asset, AssetType
from models.ticker import Ticker
from models.transaction import Transaction, TransactionType
from models.types import DecimalText

__all__ = [
    'Asset',
    'AssetType',
    'Ticker',
    'Transaction',
    'TransactionType',
    'DecimalText',
]
