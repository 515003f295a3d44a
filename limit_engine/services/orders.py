from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from web3 import Web3

from limit_engine.core.errors import InvalidOrderInput, OrderNotFound
from limit_engine.db.types import utcnow
from limit_engine.models.order import Direction, Order, OrderStatus
from limit_engine.services.notification_service import NotificationService
from limit_engine.services.order_store import OrderStore
from limit_engine.services.wallets import WalletService

logger = logging.getLogger(__name__)

EXPIRY_RE = re.compile(r"^(\d+)([mhd])$")
EXPIRY_UNITS = {"m": "minutes", "h": "hours", "d": "days"}
NO_EXPIRY = {"none", "never", "0", ""}


def parse_expiry(value: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """'30m' / '1h' / '4d' -> absolute expiry; 'none' / 'never' / '0' -> no expiry."""
    text = (value or "").strip().lower()
    if text in NO_EXPIRY:
        return None

    m = EXPIRY_RE.match(text)
    if not m or int(m.group(1)) == 0:
        raise InvalidOrderInput(f"invalid expiry {value!r}; use e.g. 30m, 1h, 4h, 1d or none")

    delta = timedelta(**{EXPIRY_UNITS[m.group(2)]: int(m.group(1))})
    return (now or utcnow()) + delta


def _decimal(name: str, value) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidOrderInput(f"{name} must be a number") from e
    if not result.is_finite():
        raise InvalidOrderInput(f"{name} must be finite")
    return result


def _token(name: str, value: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidOrderInput(f"{name} is not a valid token address")
    return Web3.to_checksum_address(value)


class OrderService:
    """Entry points the front-end calls: create, cancel, list."""

    def __init__(self, store: OrderStore, wallets: WalletService, notifier: NotificationService):
        self.store = store
        self.wallets = wallets
        self.notifier = notifier

    def create_order(
        self,
        owner_id: int,
        wallet_address: str,
        direction: Direction | str,
        token_in: str,
        token_out: str,
        amount: int,
        trigger_price: Decimal | str,
        slippage: Decimal | str,
        expiry_at: Optional[datetime] = None,
    ) -> Order:
        """
        Validate and persist a new ACTIVE order.

        Raises:
            InvalidOrderInput: anything malformed; nothing is stored
        """
        try:
            direction = Direction(str(getattr(direction, "value", direction)).upper())
        except ValueError as e:
            raise InvalidOrderInput("direction must be BUY or SELL") from e

        token_in = _token("token_in", token_in)
        token_out = _token("token_out", token_out)
        if token_in == token_out:
            raise InvalidOrderInput("token_in and token_out must differ")

        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidOrderInput("amount must be an integer number of base units")
        if amount <= 0:
            raise InvalidOrderInput("amount must be > 0")

        trigger_price = _decimal("trigger_price", trigger_price)
        if trigger_price <= 0:
            raise InvalidOrderInput("trigger_price must be > 0")

        slippage = _decimal("slippage", slippage)
        if slippage < 0 or slippage >= 1:
            raise InvalidOrderInput("slippage must be a fraction in [0, 1)")

        if expiry_at is not None and expiry_at.tzinfo is not None:
            expiry_at = expiry_at.astimezone(timezone.utc).replace(tzinfo=None)
        if expiry_at is not None and expiry_at <= utcnow():
            raise InvalidOrderInput("expiry must be in the future")

        wallet = self.wallets.get_wallet(owner_id, wallet_address)

        order = Order(
            owner_id=owner_id,
            wallet_address=wallet.address,
            wallet_encrypted_secret=wallet.encrypted_secret,
            direction=direction,
            token_in=token_in,
            token_out=token_out,
            amount=amount,
            trigger_price=trigger_price,
            slippage=slippage,
            expiry_at=expiry_at,
        )
        self.store.create(order)
        return order

    def get_order(self, order_id: int, owner_id: Optional[int] = None) -> Order:
        order = self.store.get(order_id)
        if owner_id is not None and order.owner_id != owner_id:
            raise OrderNotFound(f"order {order_id} not found")
        return order

    def cancel_order(self, order_id: int, owner_id: Optional[int] = None) -> bool:
        """
        ACTIVE -> CANCELLED through the same guard the executor uses.

        Returns False when the order is already finalized, an execution
        currently holds it, or a broadcast swap is still unsettled; nothing
        is overwritten in any of these cases.
        """
        order = self.get_order(order_id, owner_id)
        cancelled = self.store.compare_and_transition(
            order_id,
            OrderStatus.ACTIVE,
            OrderStatus.CANCELLED,
            fields={"cancel_reason": "user"},
        )
        if not cancelled:
            logger.info("Order %s: cancel rejected, already finalized or executing", order_id)
            return False

        self.notifier.order_cancelled(order)
        return True

    def list_active_orders(self, owner_id: int) -> List[Order]:
        return self.store.find_by_owner(owner_id, OrderStatus.ACTIVE)

    def list_orders(self, owner_id: int, status: Optional[OrderStatus] = None) -> List[Order]:
        return self.store.find_by_owner(owner_id, status)
