"""
api/v1/suggestions.py
─────────────────────
POST /api/v1/suggestions — intent-driven personalized suggestions.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_app_settings, get_orchestrator, optional_user_id
from core.config import Settings
from models.intent import Intent
from models.route import TravelMode
from models.suggestion import SuggestionRequest, SuggestionsResult
from services.orchestrator import SuggestionOrchestrator

router = APIRouter(
    prefix="/suggestions",
    tags=["suggestions"],
)


class SuggestionBody(BaseModel):
    """Request body; range checks happen in the intent policy so all errors are reported together."""

    intent: Intent = Intent.QUICK_SUGGESTION
    lat: float
    lng: float
    radius_m: Optional[int] = Field(default=None, description="Search radius in metres")
    walking_distance_m: Optional[int] = Field(default=None, description="Required for ROUTE_PLANNING")
    max_results: Optional[int] = None
    travel_mode: TravelMode = TravelMode.WALKING
    session_id: Optional[str] = None


@router.post(
    "",
    response_model=SuggestionsResult,
    summary="Get personalized suggestions",
    description=(
        "Ranks nearby places with the hybrid scorer, diversifies them per "
        "intent and, for ROUTE_PLANNING, orders them into a walking route. "
        "Send X-User-Id for personalization; anonymous requests are not "
        "personalized and leave no history."
    ),
)
async def create_suggestions(
    body: SuggestionBody,
    user_id: Optional[str] = Depends(optional_user_id),
    orchestrator: SuggestionOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> SuggestionsResult:
    request = SuggestionRequest(
        user_id=user_id,
        intent=body.intent,
        lat=body.lat,
        lng=body.lng,
        radius_m=body.radius_m if body.radius_m is not None else settings.DEFAULT_RADIUS_M,
        walking_distance_m=body.walking_distance_m,
        max_results=body.max_results,
        travel_mode=body.travel_mode,
        session_id=body.session_id,
    )
    try:
        return await asyncio.wait_for(
            orchestrator.create_suggestions(request),
            timeout=settings.REQUEST_TIMEOUT,
        )
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail="Suggestion request timed out")
