from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from limit_engine.db.base import Base
from limit_engine.db.types import utcnow


class Notification(Base):
    """Outbound message for an order owner, kept for the front-end to replay."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    order_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)

    type: Mapped[str] = mapped_column(String(32), nullable=False)  # ORDER_FILLED, ORDER_EXPIRED, ...
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    data: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
