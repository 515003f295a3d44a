"""
Order Executor
Turns an eligible order into confirmed on-chain transactions and records the fill.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from limit_engine.core.errors import (
    LimitEngineError,
    PartialExecutionFailure,
    TerminalConflict,
    TransientExternalError,
)
from limit_engine.models.order import Order, OrderStatus
from limit_engine.schemas.swap_plan import SwapPlan
from limit_engine.services.chain import ChainClient
from limit_engine.services.notification_service import NotificationService
from limit_engine.services.order_store import OrderStore
from limit_engine.services.swap_planner import SwapPlanClient

logger = logging.getLogger(__name__)


class ExecutionOutcome(str, enum.Enum):
    FILLED = "FILLED"
    FAILED = "FAILED"        # nothing confirmed; retried next tick
    PARTIAL = "PARTIAL"      # some steps confirmed, then a failure
    CONFLICT = "CONFLICT"    # lease or fill guard lost to another writer
    PENDING = "PENDING"      # an earlier swap broadcast is still unmined


@dataclass
class ExecutionResult:
    order_id: int
    outcome: ExecutionOutcome
    tx_hash: Optional[str] = None
    executed_price: Optional[Decimal] = None
    error: Optional[LimitEngineError] = None

    @property
    def filled(self) -> bool:
        return self.outcome == ExecutionOutcome.FILLED


class OrderExecutor:
    def __init__(
        self,
        store: OrderStore,
        planner: SwapPlanClient,
        chain: ChainClient,
        notifier: NotificationService,
    ) -> None:
        self.store = store
        self.planner = planner
        self.chain = chain
        self.notifier = notifier

    def execute(self, order: Order, current_price: Decimal) -> ExecutionResult:
        """
        Run one execution attempt for ``order`` at the observed ``current_price``.

        The attempt holds the order's execution lease for its whole duration;
        a second concurrent attempt on the same id gets CONFLICT without
        touching the chain. Failures leave the order ACTIVE.
        """
        lease = self.store.claim(order.id)
        if lease is None:
            logger.info("Order %s: execution already in flight or order finalized", order.id)
            return ExecutionResult(
                order.id,
                ExecutionOutcome.CONFLICT,
                error=TerminalConflict(f"order {order.id} is leased or no longer ACTIVE"),
            )

        try:
            # re-read under the lease; the caller's copy may be a tick old
            order = self.store.get(order.id)
            if order.status != OrderStatus.ACTIVE:
                return ExecutionResult(
                    order.id,
                    ExecutionOutcome.CONFLICT,
                    error=TerminalConflict(f"order {order.id} is {order.status.value}"),
                )

            if order.pending_tx_hash:
                result = self._reconcile(order, lease, current_price)
                if result is not None:
                    return result

            return self._execute_plan(order, lease, current_price)
        finally:
            self.store.release(order.id, lease)

    def settle_pending(self, order: Order, current_price: Decimal) -> Optional[ExecutionResult]:
        """
        Resolve a journaled swap without planning a new one.

        Returns None once nothing is journaled any more (the swap reverted,
        was dropped, or there never was one); otherwise the reconcile result.
        """
        lease = self.store.claim(order.id)
        if lease is None:
            return ExecutionResult(
                order.id,
                ExecutionOutcome.CONFLICT,
                error=TerminalConflict(f"order {order.id} is leased or no longer ACTIVE"),
            )

        try:
            order = self.store.get(order.id)
            if order.status != OrderStatus.ACTIVE:
                return ExecutionResult(
                    order.id,
                    ExecutionOutcome.CONFLICT,
                    error=TerminalConflict(f"order {order.id} is {order.status.value}"),
                )
            if not order.pending_tx_hash:
                return None
            return self._reconcile(order, lease, current_price)
        finally:
            self.store.release(order.id, lease)

    def _reconcile(self, order: Order, lease: str, current_price: Decimal) -> Optional[ExecutionResult]:
        """Settle a swap broadcast by an earlier attempt before planning a new one."""
        tx_hash = order.pending_tx_hash
        try:
            receipt = self.chain.get_receipt(tx_hash)
            if receipt is None and self.chain.is_known(tx_hash):
                logger.info("Order %s: swap %s still pending", order.id, tx_hash)
                return ExecutionResult(order.id, ExecutionOutcome.PENDING, tx_hash=tx_hash)
        except TransientExternalError as e:
            logger.warning("Order %s: could not reconcile %s: %s", order.id, tx_hash, e)
            return ExecutionResult(order.id, ExecutionOutcome.FAILED, tx_hash=tx_hash, error=e)

        if receipt is not None and receipt.succeeded:
            logger.info("Order %s: earlier swap %s confirmed on-chain", order.id, tx_hash)
            return self._finalize(order, lease, tx_hash, current_price)

        logger.info("Order %s: earlier swap %s reverted or dropped, replanning", order.id, tx_hash)
        self.store.record_submission(order.id, lease, None)
        return None

    def _execute_plan(self, order: Order, lease: str, current_price: Decimal) -> ExecutionResult:
        try:
            plan = self.planner.plan_swap(order.wallet_address, order.token_in, order.token_out, order.amount)
        except TransientExternalError as e:
            logger.warning("Order %s: no swap plan this tick: %s", order.id, e)
            return ExecutionResult(order.id, ExecutionOutcome.FAILED, error=e)

        try:
            tx_hash = self._run_plan(order, lease, plan)
        except PartialExecutionFailure as e:
            logger.error("Order %s: partial execution: %s", order.id, e)
            self.store.flag(order.id, str(e))
            self._notify(self.notifier.execution_needs_review, order, str(e))
            return ExecutionResult(order.id, ExecutionOutcome.PARTIAL, error=e)
        except TransientExternalError as e:
            logger.warning("Order %s: execution failed before any confirmation: %s", order.id, e)
            return ExecutionResult(order.id, ExecutionOutcome.FAILED, error=e)

        return self._finalize(order, lease, tx_hash, current_price)

    def _run_plan(self, order: Order, lease: str, plan: SwapPlan) -> str:
        """
        Submit every pending item step by step; each item is confirmed before
        the next is sent. Returns the receipt-step tx hash.
        """
        receipt_index = plan.receipt_step_index
        confirmed: list[str] = []
        receipt_hash: Optional[str] = None

        def journal(tx_hash: str) -> None:
            self.store.record_submission(order.id, lease, tx_hash)

        for index, step in enumerate(plan.steps):
            for item in step.pending_items:
                logger.info("Order %s: sending %s tx to %s", order.id, step.id, item.to)
                try:
                    receipt = self.chain.sign_and_send(
                        order.wallet,
                        item.to_tx_request(),
                        on_submitted=journal if index == receipt_index else None,
                    )
                except TransientExternalError as e:
                    if confirmed:
                        raise PartialExecutionFailure(
                            f"step '{step.id}' failed after {len(confirmed)} confirmed tx: {e}",
                            confirmed,
                        ) from e
                    raise

                confirmed.append(receipt.tx_hash)
                if index == receipt_index:
                    receipt_hash = receipt.tx_hash

        return receipt_hash or confirmed[-1]

    def _finalize(self, order: Order, lease: str, tx_hash: str, current_price: Decimal) -> ExecutionResult:
        won = self.store.compare_and_transition(
            order.id,
            OrderStatus.ACTIVE,
            OrderStatus.FILLED,
            fields={"tx_hash": tx_hash, "executed_price": current_price},
            lease_token=lease,
        )
        if not won:
            # swap landed but the lease was lost; needs a human
            message = f"swap {tx_hash} confirmed but fill transition was rejected"
            self.store.flag(order.id, message)
            return ExecutionResult(
                order.id,
                ExecutionOutcome.CONFLICT,
                tx_hash=tx_hash,
                executed_price=current_price,
                error=TerminalConflict(message),
            )

        logger.info("Order %s filled: tx=%s price=%s", order.id, tx_hash, current_price)
        self._notify(self.notifier.order_filled, order, current_price, tx_hash)
        return ExecutionResult(order.id, ExecutionOutcome.FILLED, tx_hash=tx_hash, executed_price=current_price)

    @staticmethod
    def _notify(send, *args) -> None:
        try:
            send(*args)
        except Exception:
            # order state is already committed
            logger.exception("Failed to record notification via %s", getattr(send, "__name__", send))
