"""
api/v1/profile.py
─────────────────
GET | PUT | DELETE /api/v1/profile — the caller's explicit taste profile.
GET | POST /api/v1/profile/quiz — the taste quiz and its answers.
"""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.deps import get_history_store, get_profile_service, require_user_id
from models.quiz import TasteQuiz
from models.taste import TasteProfile
from services.history_store import HistoryStore
from services.taste_profile_store import TasteProfileService

router = APIRouter(
    prefix="/profile",
    tags=["profile"],
)


class ProfileUpdate(BaseModel):
    weights: Dict[str, float] = Field(
        ...,
        description='Weights by key, e.g. {"Food": 0.9, "CalmnessWeight": 0.3}; clamped to [0, 1]',
    )


class QuizSubmission(BaseModel):
    answers: Dict[str, str] = Field(..., description='Chosen option per step, e.g. {"free_day": "museum"}')
    quiz_version: Optional[str] = Field(default=None, description="Defaults to the current quiz")


class ProfileDeleted(BaseModel):
    user_id: str
    profile_deleted: bool
    history_records_deleted: int


@router.get("", response_model=TasteProfile, summary="Get the taste profile")
async def get_profile(
    user_id: str = Depends(require_user_id),
    profiles: TasteProfileService = Depends(get_profile_service),
) -> TasteProfile:
    """Returns the stored profile, or a neutral unsaved one (version 0)."""
    return await profiles.get_or_default(user_id)


@router.put("", response_model=TasteProfile, summary="Set taste weights")
async def put_profile(
    body: ProfileUpdate,
    user_id: str = Depends(require_user_id),
    profiles: TasteProfileService = Depends(get_profile_service),
) -> TasteProfile:
    return await profiles.update_weights(user_id, body.weights)


@router.get("/quiz", response_model=TasteQuiz, summary="Get the taste quiz")
async def get_quiz(
    quiz_version: Optional[str] = None,
    profiles: TasteProfileService = Depends(get_profile_service),
) -> TasteQuiz:
    return profiles.get_quiz(quiz_version)


@router.post("/quiz", response_model=TasteProfile, summary="Submit quiz answers")
async def submit_quiz(
    body: QuizSubmission,
    user_id: str = Depends(require_user_id),
    profiles: TasteProfileService = Depends(get_profile_service),
) -> TasteProfile:
    """Rebuilds every weight from a neutral start plus the chosen options."""
    return await profiles.submit_quiz(user_id, body.answers, body.quiz_version)


@router.delete("", response_model=ProfileDeleted, summary="Delete profile and history")
async def delete_profile(
    user_id: str = Depends(require_user_id),
    profiles: TasteProfileService = Depends(get_profile_service),
    history: HistoryStore = Depends(get_history_store),
) -> ProfileDeleted:
    deleted = await profiles.delete(user_id)
    removed = await history.delete_user_data(user_id)
    return ProfileDeleted(user_id=user_id, profile_deleted=deleted, history_records_deleted=removed)
