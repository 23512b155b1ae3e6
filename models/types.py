"""
Column types shared by the ledger tables.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class DecimalText(TypeDecorator):
    """
    Stores ``Decimal`` values as their exact text representation.

    SQLite has no native decimal type; binding through REAL would reintroduce
    the float drift the ledger arithmetic avoids.
    """

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return str(value)

    def process_result_value(self, value, dialect) -> Optional[Decimal]:
        if value is None:
            return None
        # Columns created by older schemas may still hold REAL values
        return Decimal(str(value))
