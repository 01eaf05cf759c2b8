from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from coinconvert.errors import SourceError
from coinconvert.ingestion.scheduler import RefreshScheduler
from coinconvert.ingestion.sources import PriceSource
from coinconvert.models import CoinEntity, PriceEntity, RefreshInterval, RefreshSummary
from coinconvert.storage import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PRICE_LIST = TypeAdapter(List[PriceEntity])
_COIN_LIST = TypeAdapter(List[CoinEntity])


def _unique_by_symbol(entities: Iterable[PriceEntity]) -> List[PriceEntity]:
    """Keep the first entity seen for each symbol."""
    seen: dict[str, PriceEntity] = {}
    for entity in entities:
        seen.setdefault(entity.symbol, entity)
    return list(seen.values())


class CachedPriceClient:
    """Owns the refresh schedule and cache records of one price source.

    Reads never reach the network: they only see the last full set written
    by a successful refresh. Each refresh replaces its record in one write.
    """

    PRICE_CACHE_KEY = "prices"
    COIN_LIST_CACHE_KEY = "coin_list"
    HOOK_PREFIX = "refresh_prices"

    def __init__(
        self,
        source: PriceSource,
        store: KeyValueStore,
        scheduler: RefreshScheduler,
        request_timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.source = source
        self.store = store
        self.scheduler = scheduler
        self.request_timeout_seconds = request_timeout_seconds
        self.transport = transport

    @property
    def prices_cache_key(self) -> str:
        return f"{self.source.slug}_{self.PRICE_CACHE_KEY}"

    @property
    def coin_list_cache_key(self) -> str:
        return f"{self.source.slug}_{self.COIN_LIST_CACHE_KEY}"

    @property
    def hook(self) -> str:
        return f"{self.HOOK_PREFIX}_{self.source.slug}"

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.request_timeout_seconds),
            follow_redirects=True,
            transport=self.transport,
        )

    def _load(self, key: str, adapter: TypeAdapter[List[T]]) -> List[T]:
        raw = self.store.get(key, [])
        if not isinstance(raw, list):
            logger.warning("Cache record %s is not a list, ignoring it", key)
            return []
        try:
            return adapter.validate_python(raw)
        except ValidationError as exc:
            logger.warning("Cache record %s is unreadable, ignoring it: %s", key, exc)
            return []

    def refresh_interval(self) -> RefreshInterval:
        return self.source.refresh_interval()

    def ensure_scheduled(self) -> bool:
        """Register the recurring price refresh if this source has none yet."""
        self.scheduler.bind(self.hook, self.refresh_prices)
        return self.scheduler.schedule(self.hook, self.refresh_interval())

    def next_scheduled_refresh(self) -> Optional[int]:
        return self.scheduler.next_scheduled(self.hook)

    async def refresh_prices(self) -> RefreshSummary:
        """Fetch, transform and cache the full price set.

        A provider failure leaves the previous set in place; the next
        scheduled run is the retry.
        """
        try:
            async with self._http_client() as client:
                raw = await self.source.fetch_prices(client)
        except SourceError as exc:
            logger.warning("Price refresh for %s failed [%s]: %s", self.source.name, exc.code, exc.message)
            return RefreshSummary(source=self.source.slug, success=False, error_code=exc.code, error=exc.message)

        entities = _unique_by_symbol(self.source.transform_prices(raw))
        self.store.set(self.prices_cache_key, entities)
        logger.info("Cached %s prices for %s", len(entities), self.source.name)
        return RefreshSummary(source=self.source.slug, success=True, written_records=len(entities))

    async def refresh_coins(self) -> List[CoinEntity]:
        """Fetch and cache the provider coin list; ``SourceError`` propagates."""
        async with self._http_client() as client:
            raw = await self.source.fetch_coin_list(client)

        entities = self.source.transform_coin_list(raw)
        self.store.set(self.coin_list_cache_key, entities)
        logger.info("Cached %s coins for %s", len(entities), self.source.name)
        return entities

    def get_prices(self, symbols: Optional[Sequence[str]] = None) -> List[PriceEntity]:
        prices = self._load(self.prices_cache_key, _PRICE_LIST)
        if not symbols:
            return prices
        wanted = {symbol.strip().lower() for symbol in symbols}
        return [price for price in prices if price.symbol.lower() in wanted]

    def cached_coins(self) -> List[CoinEntity]:
        return self._load(self.coin_list_cache_key, _COIN_LIST)

    async def get_available_coins(self, force: bool = False) -> List[CoinEntity]:
        """Cached coin list; ``force`` refreshes it first and may raise ``SourceError``."""
        if force:
            return await self.refresh_coins()
        return self.cached_coins()
