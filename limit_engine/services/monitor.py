"""
Order Monitor
Background sweep over ACTIVE orders: price check, dispatch, expiry.
"""
from __future__ import annotations

import enum
import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from limit_engine.core.errors import TransientExternalError
from limit_engine.db.types import utcnow
from limit_engine.models.order import Direction, Order, OrderStatus
from limit_engine.services.executor import OrderExecutor
from limit_engine.services.notification_service import NotificationService
from limit_engine.services.order_store import OrderStore
from limit_engine.services.price_oracle import PriceOracleClient

logger = logging.getLogger(__name__)


class TickAction(str, enum.Enum):
    EXECUTED = "executed"
    EXPIRED = "expired"
    SKIPPED = "skipped"   # price unavailable
    FAILED = "failed"     # dispatched, did not fill
    NOOP = "noop"


def is_eligible(direction: Direction, current_price: Decimal, trigger_price: Decimal, slippage: Decimal) -> bool:
    """
    BUY tolerates paying up to ``slippage`` above the trigger,
    SELL tolerates receiving down to ``slippage`` below it.
    """
    if direction == Direction.BUY:
        return current_price <= trigger_price * (1 + slippage)
    return current_price >= trigger_price * (1 - slippage)


class OrderMonitor:
    """
    One pass starts only after the previous pass, including every
    per-order execution in it, has finished; then the loop waits
    ``interval`` seconds. Orders inside a pass run on a bounded pool.
    """

    def __init__(
        self,
        store: OrderStore,
        oracle: PriceOracleClient,
        executor: OrderExecutor,
        notifier: NotificationService,
        interval: float = 5.0,
        max_workers: int = 4,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.executor = executor
        self.notifier = notifier
        self.interval = interval
        self.max_workers = max(1, max_workers)
        self.clock = clock

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="order-monitor", daemon=True)
        self._thread.start()
        logger.info("Order monitor started (interval=%ss, workers=%s)", self.interval, self.max_workers)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Order monitor stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Order monitor pass crashed")
            self._stop.wait(self.interval)

    def run_once(self) -> Counter:
        """One full sweep. Returns a count of actions taken per TickAction."""
        try:
            orders = self.store.find_active()
        except Exception:
            logger.exception("Failed to load active orders")
            return Counter()

        if not orders:
            return Counter()

        now = self.clock()
        if self.max_workers == 1 or len(orders) == 1:
            actions = [self._process_safely(order, now) for order in orders]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="order-worker") as pool:
                actions = list(pool.map(lambda o: self._process_safely(o, now), orders))

        summary = Counter(actions)
        logger.debug("Monitor pass: %d orders, %s", len(orders), dict(summary))
        return summary

    def _process_safely(self, order: Order, now: datetime) -> TickAction:
        try:
            return self.process_order(order, now)
        except Exception:
            logger.exception("Order %s: unexpected error during evaluation", order.id)
            return TickAction.FAILED

    def process_order(self, order: Order, now: datetime) -> TickAction:
        token = order.watched_token
        try:
            price = self.oracle.price_of(token)
        except TransientExternalError as e:
            logger.warning("Order %s: price for %s unavailable, skipping: %s", order.id, token, e)
            return TickAction.SKIPPED

        action = TickAction.NOOP
        if is_eligible(order.direction, price, order.trigger_price, order.slippage):
            logger.info(
                "Order %s eligible: %s %s price=%s trigger=%s slippage=%s",
                order.id,
                order.direction.value,
                token,
                price,
                order.trigger_price,
                order.slippage,
            )
            result = self.executor.execute(order, price)
            if result.filled:
                return TickAction.EXECUTED
            action = TickAction.FAILED

        if order.is_expired(now):
            if order.pending_tx_hash:
                # the journaled swap decides first; expire only once it is gone
                settled = self.executor.settle_pending(order, price)
                if settled is not None:
                    return TickAction.EXECUTED if settled.filled else action
            if self.store.compare_and_transition(
                order.id,
                OrderStatus.ACTIVE,
                OrderStatus.CANCELLED,
                fields={"cancel_reason": "expired"},
            ):
                logger.info("Order %s expired at %s", order.id, order.expiry_at)
                try:
                    self.notifier.order_expired(order)
                except Exception:
                    logger.exception("Order %s: expiry notification failed", order.id)
                return TickAction.EXPIRED

        return action
