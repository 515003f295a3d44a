from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from limit_engine.db.base import Base
from limit_engine.db.types import BaseUnits, DecimalText, utcnow


class Direction(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.ACTIVE


@dataclass(frozen=True)
class WalletRef:
    """Address + ciphertext pair; what signing needs from an order or a user wallet."""

    address: str
    encrypted_secret: str

    def __repr__(self) -> str:
        return f"WalletRef(address={self.address!r})"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)

    # wallet bound at creation, never rebound
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    wallet_encrypted_secret: Mapped[str] = mapped_column(Text, nullable=False)

    direction: Mapped[Direction] = mapped_column(Enum(Direction, native_enum=False, length=8), nullable=False)
    token_in: Mapped[str] = mapped_column(String(42), nullable=False)
    token_out: Mapped[str] = mapped_column(String(42), nullable=False)

    amount: Mapped[int] = mapped_column(BaseUnits, nullable=False)
    trigger_price: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    slippage: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)  # fraction, 0.01 == 1%

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, native_enum=False, length=16),
        index=True,
        nullable=False,
        default=OrderStatus.ACTIVE,
    )
    expiry_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # execution outcome
    tx_hash: Mapped[str | None] = mapped_column(String(80), nullable=True)
    executed_price: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # in-flight execution lease
    lease_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # swap tx broadcast but not yet confirmed
    pending_tx_hash: Mapped[str | None] = mapped_column(String(80), nullable=True)

    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    @property
    def wallet(self) -> WalletRef:
        return WalletRef(self.wallet_address, self.wallet_encrypted_secret)

    @property
    def watched_token(self) -> str:
        """Token whose price decides eligibility: what a BUY acquires, what a SELL gives up."""
        return self.token_out if self.direction == Direction.BUY else self.token_in

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_at is not None and now > self.expiry_at

    def __repr__(self) -> str:
        return (
            f"Order(id={self.id}, owner_id={self.owner_id}, direction={self.direction.value}, "
            f"status={self.status.value})"
        )
