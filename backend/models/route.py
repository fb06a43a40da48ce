"""
models/route.py
───────────────
Waypoints and optimized routes.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from models.place import Coordinates


class TravelMode(str, Enum):
    WALKING = "walking"
    BICYCLING = "bicycling"
    DRIVING = "driving"
    TRANSIT = "transit"


# Average urban speeds in m/s
MODE_SPEED_MPS = {
    TravelMode.WALKING: 1.4,
    TravelMode.BICYCLING: 4.2,
    TravelMode.DRIVING: 11.1,
    TravelMode.TRANSIT: 8.3,
}


class OptimizationMethod(str, Enum):
    EXACT = "exact"
    NEAREST_NEIGHBOR = "nearest-neighbor"
    NONE = "none"


class Waypoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    mandatory: bool = False

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


class RouteLeg(BaseModel):
    """Travel cost between two consecutive points."""

    model_config = ConfigDict(frozen=True)

    distance_m: float = Field(..., ge=0.0)
    duration_s: float = Field(..., ge=0.0)


class RouteStop(BaseModel):
    """A waypoint in visiting order with the leg that reaches it."""

    waypoint: Waypoint
    order: int = Field(..., ge=1)
    leg: RouteLeg


class OptimizedRoute(BaseModel):
    origin: Coordinates
    mode: TravelMode
    stops: List[RouteStop] = Field(default_factory=list)
    total_distance_m: float = 0.0
    total_duration_s: float = 0.0
    naive_distance_m: float = 0.0
    method: OptimizationMethod = OptimizationMethod.NONE
    improvement_pct: float = 0.0

    @property
    def waypoints(self) -> List[Waypoint]:
        return [stop.waypoint for stop in self.stops]
