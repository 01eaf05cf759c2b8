from __future__ import annotations

import logging
from typing import Optional

import httpx

from coinconvert.config import Settings, settings
from coinconvert.ingestion.client import CachedPriceClient
from coinconvert.ingestion.scheduler import RefreshScheduler
from coinconvert.ingestion.sources import create_source
from coinconvert.storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)


def build_store(config: Settings = settings) -> JsonFileStore:
    return JsonFileStore(config.cache_path)


def build_client(
    config: Settings = settings,
    store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CachedPriceClient:
    """Create the cached client for the configured price source."""
    store = store if store is not None else build_store(config)
    source = create_source(config.price_source, config.source_options(), config.tracked_symbols)
    logger.info("Using price source %s tracking %s symbols", source.name, len(config.tracked_symbols))
    return CachedPriceClient(
        source=source,
        store=store,
        scheduler=RefreshScheduler(store),
        request_timeout_seconds=config.request_timeout_seconds,
        transport=transport,
    )
