"""
Order Store
Durable order records with an atomic compare-and-transition write path.
"""
from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any, List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from limit_engine.core.errors import OrderNotFound
from limit_engine.db.types import utcnow
from limit_engine.models.order import Order, OrderStatus

logger = logging.getLogger(__name__)

# the only columns a status transition may write besides status/updated_at
TRANSITION_FIELDS = frozenset({"tx_hash", "executed_price", "cancel_reason"})


class OrderStore:
    """
    Every status change goes through ``compare_and_transition``: a single
    conditional UPDATE that only matches while the row still has the
    expected status. Two racing writers therefore cannot both win.
    """

    def __init__(self, session_factory: sessionmaker[Session], lease_seconds: int = 300):
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds

    def create(self, order: Order) -> int:
        now = utcnow()
        order.status = OrderStatus.ACTIVE
        order.created_at = now
        order.updated_at = now

        with self.session_factory() as db:
            db.add(order)
            db.commit()
            db.refresh(order)
        logger.info("Order %s created for owner %s", order.id, order.owner_id)
        return order.id

    def get(self, order_id: int) -> Order:
        with self.session_factory() as db:
            order = db.get(Order, order_id)
        if order is None:
            raise OrderNotFound(f"order {order_id} not found")
        return order

    def find_active(self) -> List[Order]:
        stmt = select(Order).where(Order.status == OrderStatus.ACTIVE).order_by(Order.created_at.asc())
        with self.session_factory() as db:
            return list(db.scalars(stmt).all())

    def find_by_owner(self, owner_id: int, status: Optional[OrderStatus] = None) -> List[Order]:
        stmt = select(Order).where(Order.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc())
        with self.session_factory() as db:
            return list(db.scalars(stmt).all())

    def compare_and_transition(
        self,
        order_id: int,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        fields: Optional[dict[str, Any]] = None,
        lease_token: Optional[str] = None,
    ) -> bool:
        """
        Atomically move ``order_id`` from ``expected_status`` to ``new_status``.

        With ``lease_token`` the caller must hold that execution lease;
        without one, the transition only succeeds while no live lease exists
        and no swap is journaled, so a cancel can never land underneath an
        in-flight or unsettled execution.

        Returns:
            True if this call performed the transition, False if the guard
            failed (order finalized, leased, journaled or missing).
        """
        fields = dict(fields or {})
        illegal = set(fields) - TRANSITION_FIELDS
        if illegal:
            raise ValueError(f"fields not writable on transition: {sorted(illegal)}")
        if expected_status == new_status:
            raise ValueError("transition must change status")
        if expected_status.is_terminal:
            raise ValueError(f"{expected_status.value} is terminal")

        now = utcnow()
        conditions = [Order.id == order_id, Order.status == expected_status]
        if lease_token is not None:
            conditions.append(Order.lease_token == lease_token)
        else:
            # a journaled swap may still land; only the executor may settle it
            conditions.append(self._no_live_lease(now))
            conditions.append(Order.pending_tx_hash.is_(None))

        values: dict[str, Any] = dict(
            status=new_status,
            updated_at=now,
            lease_token=None,
            lease_expires_at=None,
            **fields,
        )
        if new_status == OrderStatus.FILLED:
            values["pending_tx_hash"] = None

        stmt = (
            update(Order)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self.session_factory() as db:
            result = db.execute(stmt)
            db.commit()

        won = result.rowcount == 1
        if won:
            logger.info("Order %s: %s -> %s", order_id, expected_status.value, new_status.value)
        else:
            logger.info(
                "Order %s: transition %s -> %s rejected",
                order_id,
                expected_status.value,
                new_status.value,
            )
        return won

    def claim(self, order_id: int) -> Optional[str]:
        """Take the execution lease on an ACTIVE order; None if someone else holds it."""
        now = utcnow()
        token = secrets.token_hex(16)
        stmt = (
            update(Order)
            .where(
                and_(
                    Order.id == order_id,
                    Order.status == OrderStatus.ACTIVE,
                    self._no_live_lease(now),
                )
            )
            .values(lease_token=token, lease_expires_at=now + timedelta(seconds=self.lease_seconds))
            .execution_options(synchronize_session=False)
        )
        with self.session_factory() as db:
            result = db.execute(stmt)
            db.commit()
        return token if result.rowcount == 1 else None

    def release(self, order_id: int, lease_token: str) -> None:
        stmt = (
            update(Order)
            .where(and_(Order.id == order_id, Order.lease_token == lease_token))
            .values(lease_token=None, lease_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        with self.session_factory() as db:
            db.execute(stmt)
            db.commit()

    def record_submission(self, order_id: int, lease_token: str, tx_hash: Optional[str]) -> None:
        """Journal (or clear, with None) the swap tx broadcast under this lease."""
        stmt = (
            update(Order)
            .where(and_(Order.id == order_id, Order.lease_token == lease_token))
            .values(pending_tx_hash=tx_hash)
            .execution_options(synchronize_session=False)
        )
        with self.session_factory() as db:
            db.execute(stmt)
            db.commit()

    def flag(self, order_id: int, message: str) -> None:
        """Mark for operator review without touching status."""
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .values(needs_review=True, last_error=message[:2000], updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        with self.session_factory() as db:
            db.execute(stmt)
            db.commit()
        logger.warning("Order %s flagged for review: %s", order_id, message)

    @staticmethod
    def _no_live_lease(now):
        return or_(Order.lease_token.is_(None), Order.lease_expires_at < now)
