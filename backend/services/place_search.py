"""
services/place_search.py
────────────────────────
Candidate place search.

  • MongoPlaceSearch     — ``$geoNear`` over the ``places_live`` collection
  • InMemoryPlaceSearch  — haversine scan over a fixed list (memory backend)

Failures surface as ``UpstreamUnavailable``; the orchestrator degrades them
to an empty candidate list.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Protocol

from pymongo.errors import PyMongoError

from core.database import PLACES_COLLECTION
from core.errors import UpstreamUnavailable
from models.intent import FOOD_CATEGORIES
from models.place import Coordinates, Place, haversine_m

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger("wandr.search")

DEFAULT_SEARCH_LIMIT = 60

# Server-side narrowing for category hints; the intent filter stays authoritative.
_HINT_PATTERNS: Dict[str, str] = {
    "food": "|".join(FOOD_CATEGORIES),
}


class PlaceSearch(Protocol):
    async def search(
        self,
        lat: float,
        lng: float,
        radius_m: int,
        category_hint: Optional[str] = None,
    ) -> List[Place]: ...


class MongoPlaceSearch:
    def __init__(self, db: "AsyncIOMotorDatabase", limit: int = DEFAULT_SEARCH_LIMIT):
        self.collection = db[PLACES_COLLECTION]
        self.limit = limit

    async def search(
        self,
        lat: float,
        lng: float,
        radius_m: int,
        category_hint: Optional[str] = None,
    ) -> List[Place]:
        geo_near: Dict[str, Any] = {
            "near": {"type": "Point", "coordinates": [lng, lat]},
            "distanceField": "dist_meters",
            "maxDistance": radius_m,
            "spherical": True,
        }
        pattern = _HINT_PATTERNS.get(category_hint or "")
        if pattern:
            geo_near["query"] = {"category": {"$regex": pattern, "$options": "i"}}

        pipeline: List[Dict[str, Any]] = [{"$geoNear": geo_near}, {"$limit": self.limit}]

        places: List[Place] = []
        try:
            async for doc in self.collection.aggregate(pipeline):
                try:
                    places.append(Place.from_mongo(doc))
                except (KeyError, ValueError) as exc:
                    logger.warning("Skipping malformed place %s: %s", doc.get("_id"), exc)
        except PyMongoError as exc:
            raise UpstreamUnavailable("place_search", str(exc)) from exc

        logger.info("Found %d candidates within %d m of (%.4f, %.4f)", len(places), radius_m, lat, lng)
        return places


class InMemoryPlaceSearch:
    """Nearest-first scan over a static catalog."""

    def __init__(self, places: Iterable[Place] = (), limit: int = DEFAULT_SEARCH_LIMIT):
        self.places: List[Place] = list(places)
        self.limit = limit

    def add(self, place: Place) -> None:
        self.places.append(place)

    async def search(
        self,
        lat: float,
        lng: float,
        radius_m: int,
        category_hint: Optional[str] = None,
    ) -> List[Place]:
        origin = Coordinates(lat=lat, lng=lng)
        in_range = [
            (haversine_m(origin, place.coordinates), place)
            for place in self.places
        ]
        in_range = [(d, p) for d, p in in_range if d <= radius_m]
        in_range.sort(key=lambda pair: (pair[0], pair[1].id))
        return [place for _, place in in_range[: self.limit]]
