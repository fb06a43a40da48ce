"""
scripts/sweep_exclusions.py
───────────────────────────
Delete expired "don't show again" exclusions.

Expired exclusions are already ignored on the hot path; this sweep only
reclaims storage. Intended to run periodically (cron / scheduler).

Usage:
    python -m scripts.sweep_exclusions          # from backend/
    python scripts/sweep_exclusions.py          # direct
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from motor.motor_asyncio import AsyncIOMotorClient

# Ensure backend/ is on sys.path when run directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import get_settings
from services.history_store import HistoryStore, MongoHistoryStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("wandr.sweep")


async def sweep(store: HistoryStore) -> int:
    removed = await store.purge_expired_exclusions()
    logger.info("Sweep complete — %d expired exclusions removed", removed)
    return removed


async def main() -> None:
    settings = get_settings()
    if settings.STORAGE_BACKEND != "mongo":
        logger.info("STORAGE_BACKEND=%s has no durable exclusions — nothing to sweep", settings.STORAGE_BACKEND)
        return

    client = AsyncIOMotorClient(settings.MONGODB_URL)
    try:
        db = client.get_default_database(settings.MONGODB_DB)
        await sweep(MongoHistoryStore(db))
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
