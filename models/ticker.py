"""
Ticker model - a quoted instrument on an exchange in a currency.
"""

from decimal import Decimal
from typing import Optional
from datetime import datetime
from sqlalchemy import Column, UniqueConstraint
from sqlmodel import SQLModel, Field

from models.types import DecimalText


class Ticker(SQLModel, table=True):
    """Represents a ticker symbol, optionally owned by an asset."""
    __tablename__ = "tickers"
    __table_args__ = (
        UniqueConstraint("symbol", name="uq_tickers_symbol"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    symbol: str = Field(index=True)  # e.g., "AAPL", "VOW3.DE"
    name: Optional[str] = Field(default=None)
    exchange: str = Field(default="")  # e.g., "NASDAQ", "XETRA"
    currency: str  # ISO 4217, e.g., "USD", "EUR"
    last_price: Optional[Decimal] = Field(default=None, sa_column=Column(DecimalText))
    last_price_updated_at: Optional[datetime] = Field(default=None)
    asset_id: Optional[int] = Field(default=None, foreign_key="assets.id", index=True)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
