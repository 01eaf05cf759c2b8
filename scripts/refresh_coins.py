from __future__ import annotations

import asyncio
import logging
import sys

from coinconvert.errors import SourceError
from coinconvert.ingestion.pipeline import build_client

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def main() -> int:
    client = build_client()
    try:
        coins = await client.get_available_coins(force=True)
    except SourceError as exc:
        logger.error("Coin list refresh failed [%s]: %s", exc.code, exc.message)
        return 1
    logger.info("Cached %s coins from %s", len(coins), client.source.name)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
