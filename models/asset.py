"""
Asset model - an instrument family that groups up to three quoted tickers.
"""

from enum import Enum
from typing import Optional
from datetime import datetime
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class AssetType(str, Enum):
    """Closed classification of assets."""
    STOCK = "Stock"
    BOND = "Bond"
    ETF = "ETF"
    MUTUAL_FUND = "MutualFund"
    CRYPTO = "Crypto"
    PRECIOUS_METALS = "PreciousMetals"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: str) -> "AssetType":
        """Parse a case-insensitive asset type name."""
        key = value.strip().replace(" ", "").replace("_", "").lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"Unknown asset type: {value!r}")


class Asset(SQLModel, table=True):
    """Represents an asset; its name is unique across the ledger."""
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("name", name="uq_assets_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)  # e.g., "Volkswagen AG Vz"
    asset_type: Optional[AssetType] = Field(default=None)
    isin: Optional[str] = Field(default=None)  # e.g., "DE0007664039"
    sector: Optional[str] = Field(default=None)
    industry: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
