from __future__ import annotations

import asyncio
import logging
import sys

from coinconvert.ingestion.pipeline import build_client

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def main() -> int:
    """Refresh the price cache once; exit status 1 carries the provider error code."""
    client = build_client()
    summary = await client.refresh_prices()
    if not summary.success:
        logger.error("Price refresh from %s failed [%s]: %s", summary.source, summary.error_code, summary.error)
        return 1
    logger.info("Cached %s prices from %s", summary.written_records, summary.source)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
