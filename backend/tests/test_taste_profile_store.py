"""
Tests for taste profile persistence and update rules.

Test classes:
  1. TestFeedbackDeltas   -- per-type magnitudes, preference nudges
  2. TestProfileStore     -- compare-and-swap on version, both backends
  3. TestProfileService   -- weights, feedback, bounded retry on conflict
  4. TestQuiz             -- answers to weights, unknown answers, retakes
"""

import asyncio

import pytest

from core.errors import ConcurrencyConflict, InputInvalid
from models.quiz import TASTE_QUIZ
from models.taste import FeedbackType, Interest, Preference, TasteProfile
from services.taste_profile_store import (
    InMemoryTasteProfileStore,
    MongoTasteProfileStore,
    TasteProfileService,
    compute_feedback_deltas,
    compute_weights_from_answers,
)


@pytest.fixture(params=["memory", "mongo"])
def profile_store(request, mongo_db):
    if request.param == "mongo":
        return MongoTasteProfileStore(mongo_db)
    return InMemoryTasteProfileStore()


class FlakyStore(InMemoryTasteProfileStore):
    """Fails the first ``failures`` updates with a version conflict."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def update(self, profile):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConcurrencyConflict(profile.user_id, profile.version, profile.version + 1)
        return await super().update(profile)


# ===================================================================
# 1. Deltas
# ===================================================================

class TestFeedbackDeltas:

    def test_like_restaurant(self):
        assert compute_feedback_deltas("restaurant", FeedbackType.LIKE) == pytest.approx(
            {"FoodWeight": 0.05, "TasteQualityWeight": 0.02}
        )

    def test_dislike_scales_by_place_weight(self):
        deltas = compute_feedback_deltas("cafe", FeedbackType.DISLIKE)
        assert deltas == pytest.approx({"FoodWeight": -0.024, "CultureWeight": -0.006})

    def test_skip_is_gentle(self):
        assert compute_feedback_deltas("park", FeedbackType.SKIP) == pytest.approx({"NatureWeight": -0.01})

    def test_like_nudges_design_for_galleries(self):
        deltas = compute_feedback_deltas("art_gallery", FeedbackType.LIKE)
        assert deltas["DesignWeight"] == pytest.approx(0.02)
        assert deltas["ArtWeight"] == pytest.approx(0.04)

    def test_visited_and_unknown_produce_nothing(self):
        assert compute_feedback_deltas("restaurant", FeedbackType.VISITED) == {}
        assert compute_feedback_deltas("xyzzy", FeedbackType.LIKE) == {}
        assert compute_feedback_deltas(None, FeedbackType.LIKE) == {}


# ===================================================================
# 2. Store
# ===================================================================

class TestProfileStore:

    async def test_create_starts_at_version_one(self, profile_store):
        stored = await profile_store.create(TasteProfile.create_default("u1"))
        assert stored.version == 1
        assert (await profile_store.get("u1")).version == 1

    async def test_duplicate_create_conflicts(self, profile_store):
        await profile_store.create(TasteProfile.create_default("u1"))
        with pytest.raises(ConcurrencyConflict):
            await profile_store.create(TasteProfile.create_default("u1"))

    async def test_update_increments_version(self, profile_store):
        await profile_store.create(TasteProfile.create_default("u1"))
        profile = await profile_store.get("u1")
        profile.apply_weights({"Food": 0.9})
        stored = await profile_store.update(profile)
        assert stored.version == 2
        assert (await profile_store.get("u1")).weight(Interest.FOOD) == 0.9

    async def test_stale_update_conflicts(self, profile_store):
        await profile_store.create(TasteProfile.create_default("u1"))
        first = await profile_store.get("u1")
        second = await profile_store.get("u1")
        await profile_store.update(first)

        with pytest.raises(ConcurrencyConflict) as exc_info:
            await profile_store.update(second)
        assert exc_info.value.expected_version == 1
        assert exc_info.value.current_version == 2

    async def test_update_missing_profile_conflicts(self, profile_store):
        with pytest.raises(ConcurrencyConflict):
            await profile_store.update(TasteProfile(user_id="ghost", version=3))

    async def test_reads_are_copies(self, profile_store):
        await profile_store.create(TasteProfile.create_default("u1"))
        profile = await profile_store.get("u1")
        profile.interests[Interest.FOOD] = 0.0
        assert (await profile_store.get("u1")).weight(Interest.FOOD) == 0.5

    async def test_delete(self, profile_store):
        await profile_store.create(TasteProfile.create_default("u1"))
        assert await profile_store.delete("u1")
        assert not await profile_store.delete("u1")
        assert await profile_store.get("u1") is None


# ===================================================================
# 3. Service
# ===================================================================

class TestProfileService:

    async def test_get_or_default_does_not_persist(self, profile_service, profile_store):
        profile = await profile_service.get_or_default("u1")
        assert profile.version == 0
        assert all(w == 0.5 for w in profile.interests.values())
        assert await profile_store.get("u1") is None

    async def test_update_weights_creates_then_updates(self, profile_service):
        first = await profile_service.update_weights("u1", {"Food": 0.9, "Culture": 0.2})
        assert first.version == 1
        assert first.weight(Interest.FOOD) == 0.9

        second = await profile_service.update_weights("u1", {"Nature": 1.7})
        assert second.version == 2
        assert second.weight(Interest.NATURE) == 1.0
        assert second.weight(Interest.FOOD) == 0.9

    async def test_feedback_moves_weights_within_bounds(self, profile_service):
        await profile_service.update_weights("u1", {"Food": 0.98})
        profile = await profile_service.apply_feedback("u1", "restaurant", FeedbackType.LIKE)
        assert profile.weight(Interest.FOOD) == 1.0
        assert profile.preferences[Preference.TASTE_QUALITY] == pytest.approx(0.52)

    async def test_feedback_without_effect_returns_none(self, profile_service, profile_store):
        assert await profile_service.apply_feedback("u1", "restaurant", FeedbackType.VISITED) is None
        assert await profile_store.get("u1") is None

    async def test_first_feedback_creates_profile(self, profile_service):
        profile = await profile_service.apply_feedback("u1", "museum", FeedbackType.DISLIKE)
        assert profile.version == 1
        assert profile.weight(Interest.CULTURE) == pytest.approx(0.47)

    async def test_concurrent_feedback_loses_no_update(self, profile_service):
        await profile_service.update_weights("u1", {"Food": 0.5})
        await asyncio.gather(*(
            profile_service.apply_feedback("u1", "restaurant", FeedbackType.LIKE) for _ in range(5)
        ))
        profile = await profile_service.get("u1")
        assert profile.weight(Interest.FOOD) == pytest.approx(0.75)
        assert profile.version == 6

    async def test_retries_after_conflict(self):
        store = FlakyStore(failures=2)
        service = TasteProfileService(store)
        await store.create(TasteProfile.create_default("u1"))

        profile = await service.update_weights("u1", {"Food": 0.8})
        assert store.attempts == 3
        assert profile.weight(Interest.FOOD) == 0.8

    async def test_gives_up_after_max_retries(self):
        store = FlakyStore(failures=10)
        service = TasteProfileService(store, max_retries=3)
        await store.create(TasteProfile.create_default("u1"))

        with pytest.raises(ConcurrencyConflict):
            await service.update_weights("u1", {"Food": 0.8})
        assert store.attempts == 3

    async def test_delete(self, profile_service):
        await profile_service.update_weights("u1", {"Food": 0.9})
        assert await profile_service.delete("u1")
        assert await profile_service.get("u1") is None


# ===================================================================
# 4. Quiz
# ===================================================================

class TestQuiz:

    def test_answers_start_from_neutral(self):
        weights = compute_weights_from_answers({"evening": "quiet", "discovery": "new"})
        assert weights["CalmnessWeight"] == pytest.approx(0.8)
        assert weights["NightlifeWeight"] == pytest.approx(0.3)
        assert weights["NoveltyTolerance"] == pytest.approx(0.9)
        assert weights["FoodWeight"] == 0.5

    def test_deltas_accumulate_and_clamp(self):
        weights = compute_weights_from_answers(
            {"free_day": "food_tour", "evening": "dinner", "recharge": "coffee"}
        )
        assert weights["FoodWeight"] == 1.0
        assert weights["TasteQualityWeight"] == pytest.approx(0.75)

    def test_no_answers_is_all_neutral(self):
        assert set(compute_weights_from_answers({}).values()) == {0.5}

    def test_unknown_step_and_option_are_all_reported(self):
        with pytest.raises(InputInvalid) as exc_info:
            compute_weights_from_answers({"free_day": "skydiving", "zodiac": "leo"})
        assert len(exc_info.value.errors) == 2

    def test_every_option_key_is_a_profile_weight(self):
        profile = TasteProfile.create_default("u1")
        for step in TASTE_QUIZ.steps:
            for option in step.options:
                for key in option.deltas:
                    assert profile._get(key) is not None, key

    async def test_submit_quiz_resets_previous_weights(self, profile_service):
        await profile_service.update_weights("u1", {"Sports": 0.95})
        profile = await profile_service.submit_quiz("u1", {"free_day": "museum"})
        assert profile.version == 2
        assert profile.quiz_version == TASTE_QUIZ.version
        assert profile.weight(Interest.CULTURE) == pytest.approx(0.8)
        assert profile.weight(Interest.ART) == pytest.approx(0.65)
        assert profile.weight(Interest.SPORTS) == 0.5

    async def test_unknown_quiz_version(self, profile_service, profile_store):
        with pytest.raises(InputInvalid):
            await profile_service.submit_quiz("u1", {}, quiz_version="v99")
        assert await profile_store.get("u1") is None
