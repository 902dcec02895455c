#!/usr/bin/env python3
"""
Atelier - Batch tracking sync

Refreshes every open shipment from Melhor Envio in one carrier call.
Meant to run from a scheduler (cron, Railway cron service) between operator sessions.

Usage:
    python scripts/sync_tracking.py [--limit N]
"""
import argparse
import asyncio
import logging
import os
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

REQUIRED_VARS = ["DATABASE_URL", "SECRET_KEY"]
missing = [var for var in REQUIRED_VARS if not os.getenv(var)]
if missing:
    logger.error(f"Missing required environment variables: {missing}")
    sys.exit(1)

# Import after env validation
from atelier.core.database import get_db_session, engine
from atelier.core.exceptions import ShippingError
from atelier.services.shipping_service import ShippingService


async def main(limit=None) -> int:
    async with get_db_session() as db:
        service = ShippingService(db)
        try:
            summary = await service.sync_all(limit=limit)
        except ShippingError as e:
            logger.error(f"Tracking sync failed: {e.message}")
            return 1
        finally:
            await service.close()

    if summary["missing"]:
        logger.warning(f"Carrier did not report: {', '.join(summary['missing'])}")
    logger.info(
        f"Done: {summary['checked']} checked, {summary['updated']} updated, "
        f"{len(summary['missing'])} missing"
    )
    await engine.dispose()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sync shipment tracking from Melhor Envio")
    parser.add_argument("--limit", type=int, default=None, help="Max shipments to check")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.limit)))
