import logging

import pytest

from coinconvert.errors import MissingCredentials
from scripts import refresh_coins, refresh_once

pytestmark = pytest.mark.asyncio


@pytest.fixture
def patched_build_client(monkeypatch, price_client):
    monkeypatch.setattr(refresh_once, "build_client", lambda: price_client)
    monkeypatch.setattr(refresh_coins, "build_client", lambda: price_client)


async def test_refresh_once_success(patched_build_client, price_client):
    assert await refresh_once.main() == 0
    assert len(price_client.get_prices()) == 3


async def test_refresh_once_reports_error_code(patched_build_client, fake_source, caplog):
    fake_source.error = MissingCredentials("fake", "API key is missing.")

    with caplog.at_level(logging.ERROR):
        assert await refresh_once.main() == 1

    assert "fake_api_error_missing_key" in caplog.text


async def test_refresh_coins_exit_status(patched_build_client, fake_source):
    assert await refresh_coins.main() == 0

    fake_source.error = MissingCredentials("fake", "API key is missing.")
    assert await refresh_coins.main() == 1
