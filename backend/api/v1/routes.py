"""
api/v1/routes.py
────────────────
POST /api/v1/routes/optimize — order arbitrary waypoints into a short route.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.deps import get_history_store, get_route_optimizer, optional_user_id
from models.history import RouteHistoryEntry
from models.place import Coordinates
from models.route import OptimizedRoute, TravelMode, Waypoint
from services.history_store import HistoryStore
from services.route_optimizer import RouteOptimizer

router = APIRouter(
    prefix="/routes",
    tags=["routes"],
)


class OptimizeRouteRequest(BaseModel):
    origin: Coordinates
    waypoints: List[Waypoint] = Field(default_factory=list)
    mode: TravelMode = TravelMode.WALKING
    name: str = ""


@router.post(
    "/optimize",
    response_model=OptimizedRoute,
    summary="Optimize a visiting order",
    description=(
        "Exact for small inputs, nearest neighbour + 2-opt beyond that. "
        "The result is never longer than the input order."
    ),
)
async def optimize_route(
    body: OptimizeRouteRequest,
    user_id: Optional[str] = Depends(optional_user_id),
    optimizer: RouteOptimizer = Depends(get_route_optimizer),
    history: HistoryStore = Depends(get_history_store),
) -> OptimizedRoute:
    route = optimizer.optimize(body.origin, body.waypoints, body.mode)

    if user_id is not None:
        await history.add_route_history(
            RouteHistoryEntry(
                user_id=user_id,
                route_name=body.name,
                place_ids=[w.id for w in route.waypoints],
                total_distance_m=route.total_distance_m,
                source="route_optimizer",
            )
        )
    return route
