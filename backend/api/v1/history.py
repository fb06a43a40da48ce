"""
api/v1/history.py
─────────────────
/api/v1/history — favorites, exclusions and MRU suggestion / route history.
"""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.deps import get_history_store, require_user_id
from models.history import ExclusionEntry, FavoriteEntry, RouteHistoryEntry, SuggestionHistoryEntry
from services.history_store import HistoryStore

router = APIRouter(
    prefix="/history",
    tags=["history"],
)


class FavoriteBody(BaseModel):
    place_id: str = Field(..., min_length=1)
    place_name: str = ""
    category: Optional[str] = None
    lat: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    lng: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    notes: Optional[str] = None


class ExclusionBody(BaseModel):
    place_id: str = Field(..., min_length=1)
    place_name: str = ""
    reason: Optional[str] = None
    ttl_days: Optional[int] = Field(default=None, ge=1, description="Omit for a permanent exclusion")


# ── Favorites ───────────────────────────────────────────────────────────────

@router.get("/favorites", response_model=List[FavoriteEntry])
async def list_favorites(
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> List[FavoriteEntry]:
    return await history.list_favorites(user_id)


@router.post("/favorites", response_model=FavoriteEntry, status_code=201)
async def add_favorite(
    body: FavoriteBody,
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> FavoriteEntry:
    return await history.add_favorite(FavoriteEntry(user_id=user_id, **body.model_dump()))


@router.delete("/favorites/{place_id}", status_code=204)
async def remove_favorite(
    place_id: str,
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> None:
    if not await history.remove_favorite(user_id, place_id):
        raise HTTPException(status_code=404, detail="Favorite not found")


# ── Exclusions ──────────────────────────────────────────────────────────────

@router.get("/exclusions", response_model=List[ExclusionEntry])
async def list_exclusions(
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> List[ExclusionEntry]:
    return await history.active_exclusions(user_id)


@router.post("/exclusions", response_model=ExclusionEntry, status_code=201)
async def add_exclusion(
    body: ExclusionBody,
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> ExclusionEntry:
    ttl = timedelta(days=body.ttl_days) if body.ttl_days else None
    return await history.add_exclusion(user_id, body.place_id, body.place_name, body.reason, ttl)


@router.delete("/exclusions/{place_id}", status_code=204)
async def remove_exclusion(
    place_id: str,
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> None:
    if not await history.remove_exclusion(user_id, place_id):
        raise HTTPException(status_code=404, detail="Exclusion not found")


# ── MRU history ─────────────────────────────────────────────────────────────

@router.get("/suggestions", response_model=List[SuggestionHistoryEntry])
async def recent_suggestions(
    take: int = Query(default=20, ge=1, le=20),
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> List[SuggestionHistoryEntry]:
    return await history.recent_suggestions(user_id, take=take)


@router.get("/routes", response_model=List[RouteHistoryEntry])
async def route_history(
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
) -> List[RouteHistoryEntry]:
    return await history.route_history(user_id)
