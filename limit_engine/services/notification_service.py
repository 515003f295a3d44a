"""
Notification Service
Records owner-facing order events and fans them out over the message broker.
"""
from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import List, Optional

import redis
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, sessionmaker

from limit_engine.core.message_broker import MessageBroker
from limit_engine.db.types import utcnow
from limit_engine.models.notification import Notification
from limit_engine.models.order import Order

logger = logging.getLogger(__name__)

CHANNEL = "notifications"


def format_percent(fraction: Decimal) -> str:
    return f"{(fraction * 100).normalize():f}%"


class NotificationService:
    """Service for managing notifications."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        broker: MessageBroker,
        explorer_tx_url: str = "https://abscan.org/tx/{tx_hash}",
    ):
        self.session_factory = session_factory
        self.broker = broker
        self.explorer_tx_url = explorer_tx_url

    def create_notification(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
        order_id: Optional[int] = None,
    ) -> Notification:
        """
        Create a notification for a user and publish it for real-time delivery.

        The row is the source of truth; a broker outage is logged and the
        front-end can still replay the notification from the API.
        """
        notification = Notification(
            user_id=user_id,
            order_id=order_id,
            type=notification_type,
            title=title,
            message=message,
            data=json.dumps(data, default=str) if data else None,
            is_read=False,
            created_at=utcnow(),
        )

        with self.session_factory() as db:
            db.add(notification)
            db.commit()
            db.refresh(notification)

        try:
            self.broker.publish(CHANNEL, {
                'user_id': user_id,
                'notification_id': notification.id,
                'order_id': order_id,
                'type': notification_type,
                'title': title,
                'message': message,
            })
        except redis.RedisError as e:
            logger.warning("Notification %s stored but not published: %s", notification.id, e)

        return notification

    def get_user_notifications(
        self,
        user_id: int,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)

        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))

        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit)

        with self.session_factory() as db:
            return list(db.scalars(stmt).all())

    def mark_as_read(self, notification_id: int, user_id: int) -> Optional[Notification]:
        """
        Mark a notification as read.

        Returns:
            Updated Notification if found for this user, None otherwise
        """
        stmt = select(Notification).where(
            and_(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        with self.session_factory() as db:
            notification = db.scalar(stmt)
            if not notification:
                return None

            notification.is_read = True
            notification.read_at = utcnow()
            db.commit()
            db.refresh(notification)
        return notification

    def get_unread_count(self, user_id: int) -> int:
        stmt = select(func.count(Notification.id)).where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        with self.session_factory() as db:
            return int(db.scalar(stmt) or 0)

    # Order events

    def order_filled(self, order: Order, executed_price: Decimal, tx_hash: str) -> Notification:
        tx_link = self.explorer_tx_url.format(tx_hash=tx_hash)
        return self.create_notification(
            user_id=order.owner_id,
            order_id=order.id,
            notification_type='ORDER_FILLED',
            title='Order Executed',
            message=(
                f"Your {order.direction.value} order #{order.id} was filled.\n"
                f"Amount: {order.amount}\n"
                f"Token: {order.watched_token}\n"
                f"Executed Price: {executed_price}\n"
                f"Allowed Slippage: {format_percent(order.slippage)}\n"
                f"Transaction: {tx_link}"
            ),
            data={
                'direction': order.direction.value,
                'amount': str(order.amount),
                'token': order.watched_token,
                'executed_price': str(executed_price),
                'slippage': str(order.slippage),
                'tx_hash': tx_hash,
                'tx_url': tx_link,
            },
        )

    def order_expired(self, order: Order) -> Notification:
        return self.create_notification(
            user_id=order.owner_id,
            order_id=order.id,
            notification_type='ORDER_EXPIRED',
            title='Order Expired',
            message=f"Your {order.direction.value} order #{order.id} expired and was cancelled.",
        )

    def order_cancelled(self, order: Order) -> Notification:
        return self.create_notification(
            user_id=order.owner_id,
            order_id=order.id,
            notification_type='ORDER_CANCELLED',
            title='Order Cancelled',
            message=f"Your {order.direction.value} order #{order.id} was cancelled.",
        )

    def execution_needs_review(self, order: Order, reason: str) -> Notification:
        return self.create_notification(
            user_id=order.owner_id,
            order_id=order.id,
            notification_type='ORDER_NEEDS_REVIEW',
            title='Order Partially Executed',
            message=(
                f"Your {order.direction.value} order #{order.id} hit an error after some of its "
                f"transactions were confirmed. It stays active and will be retried. Reason: {reason}"
            ),
            data={'reason': reason},
        )
