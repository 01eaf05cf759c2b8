from __future__ import annotations

import argparse
import asyncio
import logging

from coinconvert.config import settings
from coinconvert.ingestion.pipeline import build_client

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Standalone scheduler loop that keeps the price cache fresh.")
    parser.add_argument(
        "--tick",
        type=float,
        default=settings.scheduler_tick_seconds,
        help="Seconds between checks for due refresh jobs (default: SCHEDULER_TICK_SECONDS).",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    client = build_client()
    if client.ensure_scheduled():
        logger.info("Registered refresh job %s", client.hook)
    else:
        logger.info("Refresh job %s already scheduled for %s", client.hook, client.next_scheduled_refresh())
    await client.scheduler.run_forever(args.tick)


if __name__ == "__main__":
    asyncio.run(main())
