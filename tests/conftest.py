"""
Fixtures and test setup for the Pytest suite.
"""

import os
import tempfile

# Set test environment variables BEFORE any application code is imported.
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="coinconvert-test-")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["PRICE_SOURCE"] = "coingecko"
os.environ.pop("COINGECKO_API_KEY", None)
os.environ.pop("NONCE_SECRET", None)
os.environ.pop("ADMIN_API_KEY", None)

import pytest

from coinconvert.errors import SourceError
from coinconvert.ingestion.client import CachedPriceClient
from coinconvert.ingestion.scheduler import RefreshScheduler
from coinconvert.models import CoinEntity, PriceEntity, RefreshInterval
from coinconvert.storage import JsonFileStore


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """In-memory price source; set ``error`` to make every fetch fail."""

    name = "Fake"

    def __init__(self, slug="fake", prices=None, coins=None, interval=600):
        self.slug = slug
        self.prices = dict(prices or {})
        self.coins = list(coins or [])
        self.interval = interval
        self.error: SourceError | None = None
        self.fetch_calls = 0

    async def fetch_prices(self, client):
        self.fetch_calls += 1
        if self.error:
            raise self.error
        return dict(self.prices)

    def transform_prices(self, raw):
        return [PriceEntity(symbol=symbol, price_usd=price, last_updated=1_700_000_000) for symbol, price in raw.items()]

    async def fetch_coin_list(self, client):
        if self.error:
            raise self.error
        return list(self.coins)

    def transform_coin_list(self, raw):
        return [CoinEntity(api_id=c["id"], symbol=c["symbol"], name=c["name"]) for c in raw]

    def refresh_interval(self):
        return RefreshInterval(seconds=self.interval, label="Every 10 Minutes")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "cache.json")


@pytest.fixture
def scheduler(store, clock) -> RefreshScheduler:
    return RefreshScheduler(store, clock=clock)


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource(
        prices={"BTC": 50000.0, "eth": 3000.0, "ada": 0.0},
        coins=[
            {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"},
            {"id": "ethereum", "symbol": "eth", "name": "Ethereum"},
            {"id": "cardano", "symbol": "ada", "name": "Cardano"},
        ],
    )


@pytest.fixture
def price_client(fake_source, store, scheduler) -> CachedPriceClient:
    return CachedPriceClient(source=fake_source, store=store, scheduler=scheduler)
