"""
Transaction model - an append-only ledger event against one ticker.
The five running fields are derived by the ledger replay and rewritten
whenever the scope is recomputed.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from datetime import datetime
from sqlalchemy import Column, UniqueConstraint
from sqlmodel import SQLModel, Field

from models.types import DecimalText


class TransactionType(str, Enum):
    """Ledger event kinds; values match the stored text."""
    BUY = "Buy"
    SELL = "Sell"
    DIVIDEND = "Div"

    @classmethod
    def parse(cls, value: str) -> "TransactionType":
        """Parse stored or imported type text ("Buy", "sell", "Dividend", ...)."""
        key = value.strip().lower()
        aliases = {
            "buy": cls.BUY,
            "sell": cls.SELL,
            "div": cls.DIVIDEND,
            "dividend": cls.DIVIDEND,
        }
        if key not in aliases:
            raise ValueError(f"Unknown transaction type: {value!r}")
        return aliases[key]


def _decimal_column(nullable: bool = False) -> Column:
    return Column(DecimalText, nullable=nullable)


class Transaction(SQLModel, table=True):
    """Represents a buy/sell/dividend transaction for a ticker."""
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("transaction_no", name="uq_transactions_transaction_no"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_no: int = Field(index=True)
    date: datetime = Field(index=True)
    transaction_type: str  # "Buy", "Sell" or "Div"; validated on replay
    ticker_id: int = Field(foreign_key="tickers.id", index=True)
    broker: str
    currency: str
    exchange_rate: Decimal = Field(default=Decimal("1"), sa_column=_decimal_column())
    quantity: Decimal = Field(sa_column=_decimal_column())
    price: Decimal = Field(sa_column=_decimal_column())  # Unit price, or dividend per unit
    fees: Decimal = Field(default=Decimal("0"), sa_column=_decimal_column())

    # Derived running fields
    cumulative_units: Decimal = Field(default=Decimal("0"), sa_column=_decimal_column())
    cumulative_cost: Decimal = Field(default=Decimal("0"), sa_column=_decimal_column())
    cost_of_units_sold: Decimal = Field(default=Decimal("0"), sa_column=_decimal_column())
    realized_gains: Decimal = Field(default=Decimal("0"), sa_column=_decimal_column())
    dividends_collected: Decimal = Field(default=Decimal("0"), sa_column=_decimal_column())

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
