"""
api/v1/feedback.py
──────────────────
POST /api/v1/feedback/{place_id} — per-user feedback loop for places.

Every event is appended to the user's feedback log (which feeds the implicit
and novelty scorers). Like / dislike / skip also nudge the explicit taste
profile by a bounded delta; a dislike can optionally exclude the place.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_history_store, get_profile_service, require_user_id
from models.history import FeedbackEvent
from models.taste import FeedbackType
from services.history_store import HistoryStore
from services.taste_profile_store import TasteProfileService

router = APIRouter(
    prefix="/feedback",
    tags=["feedback"],
)


# ── Models ──────────────────────────────────────────────────────────────────

class FeedbackRequest(BaseModel):
    """Request body for the feedback endpoint."""

    feedback_type: FeedbackType = Field(
        ..., description="Type of feedback to submit"
    )
    category: str = Field(default="", description="Catalog category of the place")
    place_name: str = ""
    exclude_days: Optional[int] = Field(
        default=None,
        ge=0,
        description="Dislike only: hide the place for this many days (0 = permanently)",
    )


class FeedbackResponse(BaseModel):
    """Acknowledgement returned after processing feedback."""

    place_id: str
    action: FeedbackType
    profile_version: Optional[int] = None
    excluded: bool = False
    success: bool = True
    message: str = "Feedback recorded"


_MESSAGES = {
    FeedbackType.LIKE: "Taste profile nudged toward this kind of place",
    FeedbackType.DISLIKE: "Taste profile nudged away from this kind of place",
    FeedbackType.SKIP: "Skip recorded",
    FeedbackType.VISITED: "Visit recorded",
}


# ── Endpoint ────────────────────────────────────────────────────────────────

@router.post(
    "/{place_id}",
    response_model=FeedbackResponse,
    summary="Submit feedback for a place",
)
async def submit_feedback(
    place_id: str,
    body: FeedbackRequest,
    user_id: str = Depends(require_user_id),
    history: HistoryStore = Depends(get_history_store),
    profiles: TasteProfileService = Depends(get_profile_service),
) -> FeedbackResponse:
    """
    **Actions**

    - ``like``    → interest weights +0.05 × place weight
    - ``dislike`` → interest weights −0.03 × place weight
    - ``skip``    → interest weights −0.01 × place weight
    - ``visited`` → history only
    """
    if not place_id.strip():
        raise HTTPException(status_code=400, detail="Invalid place_id")

    # Profile first; a conflict leaves no event behind for the retry to duplicate
    profile = await profiles.apply_feedback(user_id, body.category, body.feedback_type)
    await history.record_feedback(
        FeedbackEvent(
            user_id=user_id,
            place_id=place_id,
            category=body.category,
            feedback_type=body.feedback_type,
        )
    )

    excluded = False
    if body.feedback_type is FeedbackType.DISLIKE and body.exclude_days is not None:
        ttl = timedelta(days=body.exclude_days) if body.exclude_days > 0 else None
        await history.add_exclusion(user_id, place_id, body.place_name, reason="disliked", ttl=ttl)
        excluded = True

    return FeedbackResponse(
        place_id=place_id,
        action=body.feedback_type,
        profile_version=profile.version if profile else None,
        excluded=excluded,
        message=_MESSAGES[body.feedback_type],
    )
