"""
core/database.py
────────────────
Collection names and index bootstrapping.

Called once during application startup (via the lifespan) when the Mongo
storage backend is selected. Index creation is idempotent.
"""

import logging
from typing import TYPE_CHECKING, List, Sequence, Tuple, Union

import pymongo

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger("wandr.database")

# Collection names — single source of truth
PLACES_COLLECTION = "places_live"
PROFILES_COLLECTION = "taste_profiles"
FAVORITES_COLLECTION = "favorites"
EXCLUSIONS_COLLECTION = "exclusions"
SUGGESTION_HISTORY_COLLECTION = "suggestion_history"
ROUTE_HISTORY_COLLECTION = "route_history"
FEEDBACK_COLLECTION = "feedback_events"
COUNTERS_COLLECTION = "history_counters"

IndexKeys = List[Tuple[str, Union[int, str]]]

_INDEXES: Sequence[Tuple[str, str, IndexKeys, bool]] = (
    # (collection, index name, keys, unique)
    (PLACES_COLLECTION, "location_2dsphere", [("location", pymongo.GEOSPHERE)], False),
    (PROFILES_COLLECTION, "user_unique", [("user_id", pymongo.ASCENDING)], True),
    (FAVORITES_COLLECTION, "user_place_unique", [("user_id", pymongo.ASCENDING), ("place_id", pymongo.ASCENDING)], True),
    (EXCLUSIONS_COLLECTION, "user_place_unique", [("user_id", pymongo.ASCENDING), ("place_id", pymongo.ASCENDING)], True),
    (EXCLUSIONS_COLLECTION, "expires_at", [("expires_at", pymongo.ASCENDING)], False),
    (SUGGESTION_HISTORY_COLLECTION, "user_seq", [("user_id", pymongo.ASCENDING), ("seq", pymongo.DESCENDING)], False),
    (ROUTE_HISTORY_COLLECTION, "user_seq", [("user_id", pymongo.ASCENDING), ("seq", pymongo.DESCENDING)], False),
    (FEEDBACK_COLLECTION, "user_created", [("user_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)], False),
)


async def _ensure_index(
    db: "AsyncIOMotorDatabase",
    collection_name: str,
    index_name: str,
    keys: IndexKeys,
    unique: bool,
) -> None:
    collection = db[collection_name]
    existing_indexes = await collection.index_information()

    if index_name in existing_indexes:
        logger.info(
            "Index '%s' already exists on '%s' — skipping creation.",
            index_name,
            collection_name,
        )
        return

    logger.info("Creating index '%s' on '%s' …", index_name, collection_name)
    await collection.create_index(keys, name=index_name, unique=unique)
    logger.info("Index '%s' created ✓", index_name)


async def initialize_db(db: "AsyncIOMotorDatabase") -> None:
    """
    Run one-time database bootstrapping:

    1. ``2dsphere`` index on ``places_live.location`` for ``$geoNear``.
    2. Unique per-user keys for profiles, favorites and exclusions.
    3. ``(user_id, seq)`` indexes backing the MRU history pruning.
    """
    for collection_name, index_name, keys, unique in _INDEXES:
        await _ensure_index(db, collection_name, index_name, keys, unique)
