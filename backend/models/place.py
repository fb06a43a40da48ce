"""
models/place.py
───────────────
Pydantic v2 models for candidate places.

Covers:
  • GeoJSONPoint    — geospatial location with lon/lat validation
  • Coordinates     — plain (lat, lng) pair used by scoring and routing
  • Place           — immutable candidate fetched for a single request
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EARTH_RADIUS_M = 6_371_000.0


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# GeoJSON Point
# ═══════════════════════════════════════════════════════════════════════════

class GeoJSONPoint(BaseModel):
    """
    GeoJSON Point — ``{"type": "Point", "coordinates": [lon, lat]}``.

    MongoDB requires this exact shape for ``2dsphere`` indexes.
    """

    type: str = Field(default="Point", frozen=True)
    coordinates: Tuple[float, float] = Field(
        ...,
        description="[longitude, latitude]",
    )

    @field_validator("type")
    @classmethod
    def _type_must_be_point(cls, v: str) -> str:
        if v != "Point":
            raise ValueError('GeoJSON type must be "Point"')
        return v

    @field_validator("coordinates")
    @classmethod
    def _validate_coordinates(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        lon, lat = v
        if not (-180.0 <= lon <= 180.0):
            raise ValueError(f"Longitude must be between -180 and 180, got {lon}")
        if not (-90.0 <= lat <= 90.0):
            raise ValueError(f"Latitude must be between -90 and 90, got {lat}")
        return v


# ═══════════════════════════════════════════════════════════════════════════
# Coordinates
# ═══════════════════════════════════════════════════════════════════════════

class Coordinates(BaseModel):
    """A WGS-84 point in (latitude, longitude) order."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def to_geojson(self) -> GeoJSONPoint:
        return GeoJSONPoint(coordinates=(self.lng, self.lat))


def haversine_m(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in metres."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lam = math.radians(b.lng - a.lng)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


# ═══════════════════════════════════════════════════════════════════════════
# Place — candidate for a single request
# ═══════════════════════════════════════════════════════════════════════════

class Place(BaseModel):
    """
    A candidate place returned by a place search.

    Places are immutable once fetched for a request; the ``category`` field
    may hold a comma-separated list of catalog types
    (``"restaurant,food,point_of_interest"``).
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "64f1c2a9e4b0a1b2c3d4e5f6",
                "name": "Kronotrop",
                "category": "cafe",
                "lat": 41.0369,
                "lng": 28.9850,
                "rating": 4.6,
                "review_count": 812,
                "source": "google",
            }
        },
    )

    # ── Identity ────────────────────────────────────────────────────────
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=256)
    category: str = Field(default="")

    # ── Geospatial ──────────────────────────────────────────────────────
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    # ── Quality signals ─────────────────────────────────────────────────
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    review_count: int = Field(default=0, ge=0)

    # ── Provenance ──────────────────────────────────────────────────────
    source: str = Field(default="catalog")
    sponsored_from: Optional[datetime] = None
    sponsored_until: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_sponsorship_window(self) -> "Place":
        if (
            self.sponsored_from is not None
            and self.sponsored_until is not None
            and self.sponsored_until < self.sponsored_from
        ):
            raise ValueError("sponsored_until must not precede sponsored_from")
        return self

    # ── Helpers ─────────────────────────────────────────────────────────
    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)

    @property
    def category_tokens(self) -> List[str]:
        """Normalized category types, in catalog order."""
        return [t.strip().lower() for t in self.category.split(",") if t.strip()]

    def is_sponsored(self, now: datetime) -> bool:
        """True while ``now`` falls inside the sponsorship window."""
        if self.sponsored_from is None and self.sponsored_until is None:
            return False
        now = _aware(now)
        if self.sponsored_from is not None and now < _aware(self.sponsored_from):
            return False
        if self.sponsored_until is not None and now > _aware(self.sponsored_until):
            return False
        return True

    @classmethod
    def from_mongo(cls, doc: Dict[str, Any]) -> "Place":
        """Build a Place from a ``places_live`` document (GeoJSON location)."""
        lon, lat = doc["location"]["coordinates"]
        return cls(
            id=str(doc.get("_id", doc.get("place_id"))),
            name=doc["name"],
            category=doc.get("category", ""),
            lat=lat,
            lng=lon,
            rating=doc.get("rating"),
            review_count=doc.get("review_count", 0),
            source=doc.get("source", "catalog"),
            sponsored_from=doc.get("sponsored_from"),
            sponsored_until=doc.get("sponsored_until"),
        )

    def to_mongo(self) -> dict:
        """Serialize to a dict suitable for ``insert_one`` / ``replace_one``."""
        data = self.model_dump(exclude={"id", "lat", "lng"}, exclude_none=True)
        data["location"] = self.coordinates.to_geojson().model_dump()
        return data
