from __future__ import annotations

import logging

import requests
from pydantic import ValidationError

from limit_engine.core.errors import QuoteUnavailable
from limit_engine.schemas.swap_plan import SwapPlan

logger = logging.getLogger(__name__)


class SwapPlanClient:
    """Requests an ordered transaction plan for a same-chain EXACT_INPUT swap."""

    def __init__(
        self,
        base_url: str,
        chain_id: int,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.chain_id = chain_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(self, user: str, token_in: str, token_out: str, amount: int) -> dict:
        return {
            "useReceiver": True,
            "user": user,
            "originChainId": self.chain_id,
            "destinationChainId": self.chain_id,
            "originCurrency": token_in,
            "destinationCurrency": token_out,
            # base units can exceed JSON-safe integers
            "amount": str(int(amount)),
            "tradeType": "EXACT_INPUT",
        }

    def plan_swap(self, user: str, token_in: str, token_out: str, amount: int) -> SwapPlan:
        payload = self.build_payload(user, token_in, token_out, amount)

        try:
            response = self.session.post(f"{self.base_url}/quote", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise QuoteUnavailable(f"quote request failed: {e}") from e

        if not response.ok:
            logger.error("Quote API error (%s): %s", response.status_code, response.text[:500])
            raise QuoteUnavailable(f"quote request returned HTTP {response.status_code}")

        try:
            plan = SwapPlan.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise QuoteUnavailable(f"malformed swap plan: {e}") from e

        logger.info(
            "Planned swap %s -> %s for %s: steps=%s",
            token_in,
            token_out,
            user,
            [step.id for step in plan.steps],
        )
        return plan
