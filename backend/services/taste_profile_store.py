"""
services/taste_profile_store.py
───────────────────────────────
Persistence and update rules for explicit taste profiles.

Writes are compare-and-swap on the integer ``version``: an update only
lands when the stored version still equals the one the caller read, and a
stale write raises ``ConcurrencyConflict``. ``TasteProfileService`` wraps
the read-modify-write cycle in a short bounded retry loop.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional

from pymongo.errors import DuplicateKeyError

from core.database import PROFILES_COLLECTION
from core.errors import ConcurrencyConflict, InputInvalid
from models.quiz import QUIZZES, TASTE_QUIZ, TasteQuiz
from models.taste import NEUTRAL_WEIGHT, FeedbackType, Interest, Preference, TasteProfile
from services.category_mapper import map_to_interests

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger("wandr.profile")

MAX_CONCURRENCY_RETRIES = 3
RETRY_BACKOFF_S = 0.05

# feedback type → (direction, base magnitude)
_FEEDBACK_MAGNITUDE: Mapping[FeedbackType, tuple] = {
    FeedbackType.LIKE: (1.0, 0.05),
    FeedbackType.DISLIKE: (-1.0, 0.03),
    FeedbackType.SKIP: (-1.0, 0.01),
}

# words in a liked category → preference nudged by +0.02
_PREFERENCE_NUDGES = (
    (frozenset({"restaurant", "cafe"}), "TasteQualityWeight"),
    (frozenset({"spa", "wellness", "park", "library"}), "CalmnessWeight"),
    (frozenset({"art", "museum", "gallery", "design"}), "DesignWeight"),
)
PREFERENCE_NUDGE = 0.02


def compute_feedback_deltas(category: Optional[str], feedback_type: FeedbackType) -> Dict[str, float]:
    """
    Interest deltas for one feedback event, scaled by how strongly the
    place's category expresses each interest. ``visited`` is recorded in
    history but does not move explicit weights.
    """
    place_interests = map_to_interests(category)
    if not place_interests or feedback_type not in _FEEDBACK_MAGNITUDE:
        return {}

    direction, magnitude = _FEEDBACK_MAGNITUDE[feedback_type]
    deltas = {
        f"{interest.value}Weight": direction * magnitude * place_weight
        for interest, place_weight in place_interests.items()
    }

    if feedback_type is FeedbackType.LIKE:
        words = {
            word
            for token in (category or "").lower().split(",")
            for word in token.strip().split("_")
            if word
        }
        for triggers, key in _PREFERENCE_NUDGES:
            if words & triggers:
                deltas[key] = PREFERENCE_NUDGE
    return deltas


def compute_weights_from_answers(answers: Mapping[str, str], quiz: TasteQuiz = TASTE_QUIZ) -> Dict[str, float]:
    """
    Turn quiz answers (step id → option id) into a complete set of weights.

    Every weight starts neutral and each chosen option's deltas are added
    with clamping to [0, 1]. Unknown steps or options raise ``InputInvalid``
    listing all of them.
    """
    weights: Dict[str, float] = {f"{interest.value}Weight": NEUTRAL_WEIGHT for interest in Interest}
    weights.update({f"{pref.value}Weight": NEUTRAL_WEIGHT for pref in Preference})
    weights["NoveltyTolerance"] = NEUTRAL_WEIGHT

    errors: List[str] = []
    for step_id, option_id in answers.items():
        step = quiz.step(step_id)
        if step is None:
            errors.append(f"Unknown quiz step '{step_id}'")
            continue
        option = step.option(option_id)
        if option is None:
            errors.append(f"Unknown option '{option_id}' for quiz step '{step_id}'")
            continue
        for key, delta in option.deltas.items():
            weights[key] = max(0.0, min(1.0, weights[key] + delta))
    if errors:
        raise InputInvalid(errors)
    return weights


# ═══════════════════════════════════════════════════════════════════════════
# Stores
# ═══════════════════════════════════════════════════════════════════════════

class TasteProfileStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Optional[TasteProfile]: ...

    @abstractmethod
    async def create(self, profile: TasteProfile) -> TasteProfile:
        """Insert a new profile at version 1; an existing one is a conflict."""

    @abstractmethod
    async def update(self, profile: TasteProfile) -> TasteProfile:
        """Persist ``profile`` if the stored version still equals ``profile.version``."""

    @abstractmethod
    async def delete(self, user_id: str) -> bool: ...


class MongoTasteProfileStore(TasteProfileStore):
    def __init__(self, db: "AsyncIOMotorDatabase"):
        self.collection = db[PROFILES_COLLECTION]

    async def get(self, user_id: str) -> Optional[TasteProfile]:
        doc = await self.collection.find_one({"user_id": user_id}, {"_id": 0})
        return TasteProfile(**doc) if doc else None

    async def create(self, profile: TasteProfile) -> TasteProfile:
        stored = profile.model_copy(update={"version": 1})
        try:
            await self.collection.insert_one(stored.to_mongo())
        except DuplicateKeyError as exc:
            current = await self.get(profile.user_id)
            raise ConcurrencyConflict(
                profile.user_id, 0, current.version if current else None
            ) from exc
        return stored

    async def update(self, profile: TasteProfile) -> TasteProfile:
        stored = profile.model_copy(update={"version": profile.version + 1})
        result = await self.collection.update_one(
            {"user_id": profile.user_id, "version": profile.version},
            {"$set": stored.to_mongo()},
        )
        if result.matched_count == 0:
            current = await self.get(profile.user_id)
            raise ConcurrencyConflict(profile.user_id, profile.version, current.version if current else None)
        return stored

    async def delete(self, user_id: str) -> bool:
        result = await self.collection.delete_one({"user_id": user_id})
        return result.deleted_count > 0


class InMemoryTasteProfileStore(TasteProfileStore):
    def __init__(self):
        self._profiles: Dict[str, TasteProfile] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str) -> Optional[TasteProfile]:
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    async def create(self, profile: TasteProfile) -> TasteProfile:
        async with self._lock:
            current = self._profiles.get(profile.user_id)
            if current is not None:
                raise ConcurrencyConflict(profile.user_id, 0, current.version)
            stored = profile.model_copy(update={"version": 1}, deep=True)
            self._profiles[profile.user_id] = stored
        return stored.model_copy(deep=True)

    async def update(self, profile: TasteProfile) -> TasteProfile:
        async with self._lock:
            current = self._profiles.get(profile.user_id)
            if current is None or current.version != profile.version:
                raise ConcurrencyConflict(profile.user_id, profile.version, current.version if current else None)
            stored = profile.model_copy(update={"version": profile.version + 1}, deep=True)
            self._profiles[profile.user_id] = stored
        return stored.model_copy(deep=True)

    async def delete(self, user_id: str) -> bool:
        async with self._lock:
            return self._profiles.pop(user_id, None) is not None


# ═══════════════════════════════════════════════════════════════════════════
# Service
# ═══════════════════════════════════════════════════════════════════════════

class TasteProfileService:
    def __init__(self, store: TasteProfileStore, max_retries: int = MAX_CONCURRENCY_RETRIES):
        self.store = store
        self.max_retries = max_retries

    async def get(self, user_id: str) -> Optional[TasteProfile]:
        return await self.store.get(user_id)

    async def get_or_default(self, user_id: str) -> TasteProfile:
        """Stored profile, or an unsaved neutral one."""
        return await self.store.get(user_id) or TasteProfile.create_default(user_id)

    async def _read_modify_write(
        self,
        user_id: str,
        mutate: Callable[[TasteProfile], None],
        quiz_version: Optional[str] = None,
    ) -> TasteProfile:
        for attempt in range(1, self.max_retries + 1):
            existing = await self.store.get(user_id)
            profile = existing or TasteProfile.create_default(user_id)
            if quiz_version is not None:
                profile.quiz_version = quiz_version
            mutate(profile)
            try:
                if existing is None:
                    return await self.store.create(profile)
                return await self.store.update(profile)
            except ConcurrencyConflict:
                if attempt == self.max_retries:
                    raise
                logger.info("Profile write conflict for %s (attempt %d); retrying", user_id, attempt)
                await asyncio.sleep(RETRY_BACKOFF_S * attempt)
        raise AssertionError("unreachable")

    def get_quiz(self, quiz_version: Optional[str] = None) -> TasteQuiz:
        quiz = QUIZZES.get(quiz_version or TASTE_QUIZ.version)
        if quiz is None:
            raise InputInvalid([f"Unknown quiz version '{quiz_version}'"])
        return quiz

    async def submit_quiz(
        self, user_id: str, answers: Mapping[str, str], quiz_version: Optional[str] = None
    ) -> TasteProfile:
        """Replace every weight with the ones derived from the quiz answers."""
        quiz = self.get_quiz(quiz_version)
        weights = compute_weights_from_answers(answers, quiz)
        profile = await self._read_modify_write(
            user_id, lambda p: p.apply_weights(weights), quiz_version=quiz.version
        )
        logger.info("Quiz %s stored for %s (version %d)", quiz.version, user_id, profile.version)
        return profile

    async def update_weights(self, user_id: str, weights: Mapping[str, float]) -> TasteProfile:
        return await self._read_modify_write(user_id, lambda p: p.apply_weights(weights))

    async def apply_feedback(
        self, user_id: str, category: Optional[str], feedback_type: FeedbackType
    ) -> Optional[TasteProfile]:
        """Nudge interest weights from one feedback event; None when nothing changes."""
        deltas = compute_feedback_deltas(category, feedback_type)
        if not deltas:
            return None
        return await self._read_modify_write(user_id, lambda p: p.apply_delta(deltas))

    async def delete(self, user_id: str) -> bool:
        return await self.store.delete(user_id)

