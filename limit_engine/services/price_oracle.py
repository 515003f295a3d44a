from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import requests

from limit_engine.core.errors import PriceUnavailable

logger = logging.getLogger(__name__)


class PriceOracleClient:
    """Current USD price of a token from the relay currencies endpoint."""

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

    def price_of(self, token: str) -> Decimal:
        url = f"{self.base_url}/currencies/token/price"
        params = {"address": token, "chainId": self.chain_id}

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise PriceUnavailable(f"price request for {token} failed: {e}") from e

        if not response.ok:
            raise PriceUnavailable(f"price request for {token} returned HTTP {response.status_code}")

        try:
            raw = response.json().get("price")
            price = Decimal(str(raw))
        except (ValueError, AttributeError, InvalidOperation) as e:
            raise PriceUnavailable(f"malformed price payload for {token}") from e

        # a zero/negative quote would make every BUY eligible
        if not price.is_finite() or price <= 0:
            raise PriceUnavailable(f"non-positive price {raw!r} for {token}")

        logger.debug("Price %s = %s", token, price)
        return price
