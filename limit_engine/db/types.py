from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    # naive UTC, matching how every DateTime column is stored
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseUnits(TypeDecorator):
    """Unsigned token amount in base units, kept as text so 256-bit values survive any backend."""

    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class DecimalText(TypeDecorator):
    """Exact decimal stored as its string form (SQLite has no native DECIMAL)."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)
