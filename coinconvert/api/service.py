from __future__ import annotations

import logging
import random
import re
import time
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from coinconvert.api.security import RateLimiter
from coinconvert.ingestion.client import CachedPriceClient
from coinconvert.models import (
    CoinOption,
    ErrorResponse,
    PriceOut,
    PricesData,
    PricesResponse,
    SelectedCoinsResponse,
)

logger = logging.getLogger(__name__)

# Offsets added to the predicted refresh time so open clients do not all
# poll in the same second.
MIN_JITTER_SECONDS = 10
MAX_JITTER_SECONDS = 60

_COIN_TOKEN = re.compile(r"^[A-Z0-9]{1,10}$", re.IGNORECASE)

GENERIC_FAILURE_MESSAGE = "Failed to retrieve prices. Please try again later."
RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."
INVALID_COINS_MESSAGE = "Invalid coins parameter. Use comma-separated alphanumeric symbols of at most 10 characters."

Envelope = Tuple[int, Dict[str, Any]]


def sanitize_coins_param(value: Optional[str]) -> str:
    """Upper-case, trim and drop empty entries of a comma-separated list."""
    if not value:
        return ""
    coins = [coin.strip().upper() for coin in value.split(",")]
    return ",".join(coin for coin in coins if coin)


def validate_coins_param(value: Optional[str]) -> bool:
    """True when every entry is 1-10 alphanumeric characters; empty is valid."""
    if not value:
        return True
    return all(_COIN_TOKEN.match(coin.strip()) for coin in value.split(","))


def _error(status: int, message: str) -> Envelope:
    return status, ErrorResponse(message=message).model_dump()


class PriceQueryService:
    """Read side of the price cache used by the public endpoints."""

    def __init__(
        self,
        client: CachedPriceClient,
        rate_limiter: RateLimiter,
        selected_coin_ids: Sequence[str] = (),
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.rate_limiter = rate_limiter
        self.selected_coin_ids = list(selected_coin_ids)
        self.rng = rng or random.Random()
        self.clock = clock

    def calculate_next_update(self) -> int:
        now = int(self.clock())
        scheduled = self.client.next_scheduled_refresh()
        if scheduled is not None and scheduled > now:
            base = scheduled
        else:
            base = now + self.client.refresh_interval().seconds
        return base + self.rng.randint(MIN_JITTER_SECONDS, MAX_JITTER_SECONDS)

    def get_prices(self, coins: Optional[str], ip: str) -> Envelope:
        if not self.rate_limiter.hit(ip):
            logger.info("Rate limit exceeded for %s", ip)
            return _error(429, RATE_LIMITED_MESSAGE)

        coins = sanitize_coins_param(coins)
        if not validate_coins_param(coins):
            return _error(400, INVALID_COINS_MESSAGE)

        try:
            symbols = coins.split(",") if coins else None
            prices = [
                PriceOut(symbol=p.symbol, price_usd=p.price_usd, last_updated=p.last_updated)
                for p in self.client.get_prices(symbols)
            ]
            body = PricesResponse(
                data=PricesData(prices=prices, next_update=self.calculate_next_update()),
                count=len(prices),
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to serve cached prices")
            return _error(500, GENERIC_FAILURE_MESSAGE)
        return 200, body.model_dump()

    async def get_selected_coins(self) -> Envelope:
        available = {coin.api_id: coin for coin in await self.client.get_available_coins()}
        options = [
            CoinOption(value=available[coin_id].symbol, label=available[coin_id].name)
            for coin_id in self.selected_coin_ids
            if coin_id in available
        ]
        return 200, SelectedCoinsResponse(data=options, count=len(options)).model_dump()
