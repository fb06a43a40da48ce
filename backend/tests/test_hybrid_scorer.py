"""
Tests for the hybrid scorer, its reason codes and the weight configuration.

Test classes:
  1. TestReasons         -- thresholds, magnitude order, 2–4 codes, sponsorship
  2. TestSafeReasons     -- explanation failures never drop a candidate
  3. TestRanking         -- final score, then quality, then place id
  4. TestScoringWeights  -- sum ≤ 1, unused remainder, contributions
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from conftest import NOW, ORIGIN_LAT, ORIGIN_LNG, make_place
from core.config import ScoringWeights, Settings
from models.history import HistorySnapshot
from models.place import Coordinates
from models.scoring import ScoreBreakdown, ScoredCandidate, ScoringContext
from models.taste import TasteProfile
from services import explain
from services.explain import build_reasons, safe_reasons
from services.hybrid_scorer import sort_candidates

ORIGIN = Coordinates(lat=ORIGIN_LAT, lng=ORIGIN_LNG)


def _breakdown(**overrides) -> ScoreBreakdown:
    data = dict(implicit=0.5, explicit=0.5, novelty=0.5, quality=0.5, context=None,
                weights=ScoringWeights(), final=0.5)
    data.update(overrides)
    return ScoreBreakdown(**data)


def _reasons(place=None, breakdown=None, *, profile=None, history=None, distance_m=None):
    return build_reasons(
        place or make_place("p"),
        breakdown or _breakdown(),
        profile=profile,
        history=history or HistorySnapshot.empty(),
        distance_m=distance_m,
        now=NOW,
    )


def _candidate(place_id: str, final: float, quality: float) -> ScoredCandidate:
    return ScoredCandidate(place=make_place(place_id), breakdown=_breakdown(final=final, quality=quality))


# ===================================================================
# 1. Reason codes
# ===================================================================

class TestReasons:

    def test_nothing_qualifies_pads_with_generic_codes(self):
        assert _reasons() == ["GENERAL_RECOMMENDATION", "WITHIN_SEARCH_AREA"]

    def test_single_reason_is_padded(self):
        assert _reasons(breakdown=_breakdown(quality=0.9)) == ["HIGHLY_RATED", "GENERAL_RECOMMENDATION"]

    def test_ordered_by_magnitude(self):
        breakdown = _breakdown(implicit=0.9, novelty=0.75, quality=0.85)
        assert _reasons(breakdown=breakdown) == ["MATCHES_YOUR_HISTORY", "HIGHLY_RATED", "NOVEL_EXPERIENCE"]

    def test_explicit_match_names_the_interest(self):
        profile = TasteProfile.create_default("u1")
        profile.apply_weights({"Food": 0.9})
        reasons = _reasons(make_place("r", "restaurant"), _breakdown(explicit=0.9), profile=profile)
        assert reasons[0] == "MATCHES_INTEREST_FOOD"

    def test_capped_at_four(self):
        breakdown = _breakdown(implicit=0.95, novelty=0.9, quality=0.85, context=0.8)
        reasons = _reasons(breakdown=breakdown, distance_m=200.0)
        assert reasons == ["MATCHES_YOUR_HISTORY", "NOVEL_EXPERIENCE", "HIGHLY_RATED", "GOOD_FIT_NOW"]

    def test_close_to_you_below_near_threshold(self):
        assert "CLOSE_TO_YOU" in _reasons(distance_m=120.0)
        assert "CLOSE_TO_YOU" not in _reasons(distance_m=800.0)

    def test_favorite_place(self):
        history = HistorySnapshot(favorite_ids=frozenset({"p"}))
        assert _reasons(history=history)[0] == "FAVORITE_PLACE"

    def test_sponsored_takes_last_slot(self):
        place = make_place("p", sponsored_from=NOW - timedelta(days=1))
        breakdown = _breakdown(implicit=0.95, novelty=0.9, quality=0.85, context=0.8)
        assert _reasons(place, breakdown) == [
            "MATCHES_YOUR_HISTORY", "NOVEL_EXPERIENCE", "HIGHLY_RATED", "SPONSORED",
        ]

    def test_sponsored_stays_last_after_padding(self):
        place = make_place("p", sponsored_from=NOW - timedelta(days=1))
        assert _reasons(place) == ["GENERAL_RECOMMENDATION", "SPONSORED"]

    def test_expired_sponsorship_is_ignored(self):
        place = make_place("p", sponsored_from=NOW - timedelta(days=9), sponsored_until=NOW - timedelta(days=2))
        assert "SPONSORED" not in _reasons(place)


# ===================================================================
# 2. Explanation failures
# ===================================================================

def _explode(*args, **kwargs):
    raise KeyError("broken reason table")


class TestSafeReasons:

    def test_failure_yields_empty_list(self, monkeypatch):
        monkeypatch.setattr(explain, "build_reasons", _explode)
        reasons = safe_reasons(
            make_place("p"), _breakdown(), profile=None, history=HistorySnapshot.empty(),
            distance_m=None, now=NOW,
        )
        assert reasons == []

    async def test_candidate_survives_failed_explanation(self, scorer, monkeypatch):
        monkeypatch.setattr(explain, "build_reasons", _explode)
        ranked = await scorer.score_and_explain([make_place("a"), make_place("b")], ScoringContext(now=NOW))
        assert [c.place.id for c in ranked] == ["a", "b"]
        assert all(c.reasons == [] for c in ranked)


# ===================================================================
# 3. Ranking order
# ===================================================================

class TestRanking:

    def test_ties_break_on_quality_then_id(self):
        ranked = sort_candidates([
            _candidate("b", final=0.6, quality=0.7),
            _candidate("a", final=0.6, quality=0.7),
            _candidate("c", final=0.6, quality=0.9),
            _candidate("d", final=0.8, quality=0.1),
        ])
        assert [c.place.id for c in ranked] == ["d", "c", "a", "b"]

    async def test_identical_places_come_back_in_id_order(self, scorer):
        places = [make_place("zeta"), make_place("alpha"), make_place("mid")]
        ranked = await scorer.score_and_explain(places, ScoringContext(origin=ORIGIN, now=NOW))
        assert [c.place.id for c in ranked] == ["alpha", "mid", "zeta"]
        assert len({c.score for c in ranked}) == 1

    async def test_empty_input(self, scorer):
        assert await scorer.score_and_explain([], ScoringContext(now=NOW)) == []


# ===================================================================
# 4. Weights
# ===================================================================

class TestScoringWeights:

    def test_defaults_sum_to_one(self):
        assert ScoringWeights().total == pytest.approx(1.0)

    def test_sum_above_one_rejected(self):
        with pytest.raises(ValidationError):
            ScoringWeights(implicit=0.5)

    def test_tolerance(self):
        assert ScoringWeights(implicit=0.25 + 5e-7).total > 1.0

    def test_settings_reject_bad_weights_at_load(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, STORAGE_BACKEND="memory", WEIGHT_IMPLICIT=0.9)

    async def test_unused_remainder_is_dropped(self, scorer):
        weights = ScoringWeights(implicit=0.0, explicit=0.0, novelty=0.0, context=0.0, quality=0.5)
        place = make_place("p", rating=5.0, review_count=50)
        [candidate] = await scorer.score_and_explain([place], ScoringContext(weights=weights, now=NOW))
        # quality = 0.5·1.0 + 0.5·0.5 = 0.75
        assert candidate.score == pytest.approx(0.375)

    def test_contributions_are_exposed(self):
        breakdown = _breakdown(quality=0.8, context=None)
        assert breakdown.contributions["quality"] == pytest.approx(0.08)
        assert breakdown.contributions["context"] == 0.0
        assert "contributions" in breakdown.model_dump()
