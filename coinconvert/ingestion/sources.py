from __future__ import annotations

import logging
import math
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from coinconvert.errors import (
    MalformedPayload,
    MissingCredentials,
    TransportError,
    UnexpectedStatus,
    UnsupportedSourceError,
)
from coinconvert.models import CoinEntity, PriceEntity, RefreshInterval

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    """Capabilities every price provider adapter offers."""

    slug: str
    name: str

    async def fetch_prices(self, client: httpx.AsyncClient) -> Any: ...

    def transform_prices(self, raw: Any) -> List[PriceEntity]: ...

    async def fetch_coin_list(self, client: httpx.AsyncClient) -> Any: ...

    def transform_coin_list(self, raw: Any) -> List[CoinEntity]: ...

    def refresh_interval(self) -> RefreshInterval: ...


async def _get_json(
    client: httpx.AsyncClient,
    slug: str,
    url: str,
    endpoint: str,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> Any:
    """GET ``url`` and decode the JSON body, mapping failures to ``SourceError``."""
    try:
        resp = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise TransportError(slug, f"Request to external API({endpoint}) failed: {exc}", endpoint=endpoint) from exc

    if not resp.is_success:
        raise UnexpectedStatus(slug, resp.status_code, endpoint=endpoint)

    try:
        return resp.json()
    except ValueError as exc:
        raise MalformedPayload(
            slug, f"Invalid or malformed JSON received from API({endpoint}).", endpoint=endpoint
        ) from exc


def _to_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if price < 0 or not math.isfinite(price):
        return None
    return price


def _to_timestamp(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return default


class CoinGeckoSource:
    """CoinGecko ``simple/price`` and ``coins/list`` endpoints (API key required)."""

    slug = "coingecko"
    name = "CoinGecko"

    DEMO_BASE_URL = "https://api.coingecko.com/api/v3"
    PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"
    PRICE_ENDPOINT = "simple/price"
    COIN_LIST_ENDPOINT = "coins/list"
    # simple/price accepts at most 50 symbols per call.
    MAX_SYMBOLS_PER_REQUEST = 50

    def __init__(
        self,
        api_key: Optional[str],
        api_key_type: str = "demo",
        tracked_symbols: Sequence[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api_key = api_key
        self.api_key_type = api_key_type
        self.tracked_symbols = [s.lower() for s in tracked_symbols]
        self.clock = clock

    @property
    def is_paid_key(self) -> bool:
        return self.api_key_type == "paid"

    @property
    def base_url(self) -> str:
        return self.PRO_BASE_URL if self.is_paid_key else self.DEMO_BASE_URL

    def _auth_headers(self, endpoint: str) -> Dict[str, str]:
        if not self.api_key:
            raise MissingCredentials(
                self.slug,
                "CoinGecko API key is missing. Please provide a valid API key in the settings.",
                endpoint=endpoint,
            )
        header = "x-cg-pro-api-key" if self.is_paid_key else "x-cg-demo-api-key"
        return {header: self.api_key}

    def refresh_interval(self) -> RefreshInterval:
        # 15 minutes keeps the free tier under its monthly call budget.
        return RefreshInterval(seconds=900, label="Every 15 Minutes")

    async def fetch_prices(self, client: httpx.AsyncClient) -> Dict[str, Any]:
        headers = self._auth_headers(self.PRICE_ENDPOINT)
        url = f"{self.base_url}/{self.PRICE_ENDPOINT}"

        prices: Dict[str, Any] = {}
        symbols = self.tracked_symbols
        for start in range(0, len(symbols), self.MAX_SYMBOLS_PER_REQUEST):
            batch = symbols[start : start + self.MAX_SYMBOLS_PER_REQUEST]
            params = {
                "symbols": ",".join(batch),
                "vs_currencies": "usd",
                "include_last_updated_at": "true",
            }
            payload = await _get_json(client, self.slug, url, self.PRICE_ENDPOINT, params=params, headers=headers)
            if not isinstance(payload, dict):
                raise MalformedPayload(
                    self.slug,
                    f"Invalid or malformed JSON received from API({self.PRICE_ENDPOINT}).",
                    endpoint=self.PRICE_ENDPOINT,
                )
            prices.update(payload)

        logger.info("Fetched %s prices from %s", len(prices), self.name)
        return prices

    def transform_prices(self, raw: Mapping[str, Any]) -> List[PriceEntity]:
        fetched_at = int(self.clock())
        entities: List[PriceEntity] = []
        for symbol, data in raw.items():
            if not symbol or not isinstance(data, dict):
                continue
            price = _to_price(data.get("usd"))
            if price is None:
                continue
            entities.append(
                PriceEntity(
                    symbol=str(symbol),
                    price_usd=price,
                    last_updated=_to_timestamp(data.get("last_updated_at"), fetched_at),
                )
            )
        return entities

    async def fetch_coin_list(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        headers = self._auth_headers(self.COIN_LIST_ENDPOINT)
        url = f"{self.base_url}/{self.COIN_LIST_ENDPOINT}"
        payload = await _get_json(client, self.slug, url, self.COIN_LIST_ENDPOINT, headers=headers)
        if not isinstance(payload, list):
            raise MalformedPayload(
                self.slug,
                f"Invalid or malformed JSON received from API({self.COIN_LIST_ENDPOINT}).",
                endpoint=self.COIN_LIST_ENDPOINT,
            )
        logger.info("Fetched %s coins from %s", len(payload), self.name)
        return payload

    def transform_coin_list(self, raw: Sequence[Any]) -> List[CoinEntity]:
        entities: List[CoinEntity] = []
        for coin in raw:
            if not isinstance(coin, dict):
                continue
            if not all(coin.get(field) for field in ("id", "symbol", "name")):
                continue
            entities.append(CoinEntity(api_id=str(coin["id"]), symbol=str(coin["symbol"]), name=str(coin["name"])))
        return entities


def _rank(row: Dict[str, Any]) -> int:
    rank = row.get("rank")
    return rank if isinstance(rank, int) and not isinstance(rank, bool) and rank > 0 else 9999


class CoinPaprikaSource:
    """Public CoinPaprika tickers endpoint (no API key)."""

    slug = "coinpaprika"
    name = "CoinPaprika"

    BASE_URL = "https://api.coinpaprika.com/v1"
    PRICE_ENDPOINT = "tickers"
    COIN_LIST_ENDPOINT = "coins"

    def __init__(self, tracked_symbols: Sequence[str] = (), clock: Callable[[], float] = time.time) -> None:
        self.tracked_symbols = {s.lower() for s in tracked_symbols}
        self.clock = clock

    def refresh_interval(self) -> RefreshInterval:
        return RefreshInterval(seconds=300, label="Every 5 Minutes")

    async def fetch_prices(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        url = f"{self.BASE_URL}/{self.PRICE_ENDPOINT}"
        payload = await _get_json(client, self.slug, url, self.PRICE_ENDPOINT)
        if not isinstance(payload, list):
            raise MalformedPayload(
                self.slug,
                f"Invalid or malformed JSON received from API({self.PRICE_ENDPOINT}).",
                endpoint=self.PRICE_ENDPOINT,
            )

        # Symbols repeat across coins; rank order puts the intended one first.
        tickers = [row for row in payload if isinstance(row, dict)]
        tickers.sort(key=_rank)
        if self.tracked_symbols:
            tickers = [row for row in tickers if str(row.get("symbol", "")).lower() in self.tracked_symbols]

        logger.info("Fetched %s tickers from %s", len(tickers), self.name)
        return tickers

    def _parse_timestamp(self, value: Any, default: int) -> int:
        if not isinstance(value, str) or not value:
            return default
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
        except (ValueError, OverflowError):
            return default

    def transform_prices(self, raw: Sequence[Any]) -> List[PriceEntity]:
        fetched_at = int(self.clock())
        entities: List[PriceEntity] = []
        for entry in raw:
            if not isinstance(entry, dict) or not entry.get("symbol"):
                continue
            quotes = entry.get("quotes")
            usd = quotes.get("USD") if isinstance(quotes, dict) else None
            if not isinstance(usd, dict):
                continue
            price = _to_price(usd.get("price"))
            if price is None:
                continue
            entities.append(
                PriceEntity(
                    symbol=str(entry["symbol"]),
                    price_usd=price,
                    last_updated=self._parse_timestamp(entry.get("last_updated"), fetched_at),
                )
            )
        return entities

    async def fetch_coin_list(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        url = f"{self.BASE_URL}/{self.COIN_LIST_ENDPOINT}"
        payload = await _get_json(client, self.slug, url, self.COIN_LIST_ENDPOINT)
        if not isinstance(payload, list):
            raise MalformedPayload(
                self.slug,
                f"Invalid or malformed JSON received from API({self.COIN_LIST_ENDPOINT}).",
                endpoint=self.COIN_LIST_ENDPOINT,
            )
        return payload

    def transform_coin_list(self, raw: Sequence[Any]) -> List[CoinEntity]:
        entities: List[CoinEntity] = []
        for coin in raw:
            if not isinstance(coin, dict):
                continue
            if not all(coin.get(field) for field in ("id", "symbol", "name")):
                continue
            entities.append(CoinEntity(api_id=str(coin["id"]), symbol=str(coin["symbol"]), name=str(coin["name"])))
        return entities


SourceFactory = Callable[[Mapping[str, Any], Sequence[str]], PriceSource]


class SourceRegistry:
    """Maps provider slugs to adapter factories."""

    def __init__(self) -> None:
        self._factories: Dict[str, SourceFactory] = {}
        self._names: Dict[str, str] = {}

    def register(self, slug: str, name: str, factory: SourceFactory) -> None:
        self._factories[slug] = factory
        self._names[slug] = name

    def available(self) -> Dict[str, str]:
        return dict(self._names)

    def is_supported(self, slug: str) -> bool:
        return slug in self._factories

    def create(self, slug: str, options: Mapping[str, Any], tracked_symbols: Sequence[str]) -> PriceSource:
        try:
            factory = self._factories[slug]
        except KeyError:
            raise UnsupportedSourceError(f"Unsupported crypto source: {slug}") from None
        return factory(options, tracked_symbols)


registry = SourceRegistry()
registry.register(
    CoinGeckoSource.slug,
    CoinGeckoSource.name,
    lambda options, tracked: CoinGeckoSource(
        api_key=options.get("coingecko_api_key"),
        api_key_type=options.get("coingecko_api_key_type") or "demo",
        tracked_symbols=tracked,
    ),
)
registry.register(
    CoinPaprikaSource.slug,
    CoinPaprikaSource.name,
    lambda options, tracked: CoinPaprikaSource(tracked_symbols=tracked),
)


def available_sources() -> Dict[str, str]:
    return registry.available()


def is_source_supported(slug: str) -> bool:
    return registry.is_supported(slug)


def create_source(slug: str, options: Mapping[str, Any], tracked_symbols: Sequence[str]) -> PriceSource:
    """Factory for the adapter registered under ``slug``."""
    return registry.create(slug, options, tracked_symbols)
