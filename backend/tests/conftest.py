"""
Shared fixtures for the WANDR test-suite.

Storage tests run against both backends: the in-memory stores and the Mongo
stores over a mongomock-motor database. No external service is contacted.
"""

import random
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

import pytest
from mongomock_motor import AsyncMongoMockClient

from core.config import Settings
from core.database import PROFILES_COLLECTION
from models.place import Place
from models.scoring import ContextInsights, Season, TimeOfDay
from services.history_store import InMemoryHistoryStore
from services.hybrid_scorer import HybridScorer
from services.orchestrator import SuggestionOrchestrator
from services.place_search import InMemoryPlaceSearch
from services.route_optimizer import RouteOptimizer
from services.taste_profile_store import InMemoryTasteProfileStore, TasteProfileService

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)

# Taksim Square, Istanbul
ORIGIN_LAT = 41.0370
ORIGIN_LNG = 28.9850


class NoExploreRandom(random.Random):
    """Never explores under epsilon-greedy (``random()`` always above epsilon)."""

    def random(self):
        return 0.99


class StaticContext:
    def __init__(self, insights: Optional[ContextInsights] = None, fail: bool = False):
        self._insights = insights
        self._fail = fail
        self.calls = 0

    async def insights(self, lat, lng):
        self.calls += 1
        if self._fail:
            raise RuntimeError("weather provider down")
        return self._insights


def make_place(
    place_id: str,
    category: str = "restaurant",
    *,
    d_lat: float = 0.001,
    d_lng: float = 0.0,
    rating: Optional[float] = 4.5,
    review_count: int = 200,
    name: Optional[str] = None,
    **extra,
) -> Place:
    return Place(
        id=place_id,
        name=name or f"Place {place_id}",
        category=category,
        lat=ORIGIN_LAT + d_lat,
        lng=ORIGIN_LNG + d_lng,
        rating=rating,
        review_count=review_count,
        **extra,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, STORAGE_BACKEND="memory", DIVERSITY_SEED=7, WEATHERAPI_API_KEY="")


@pytest.fixture
def place_factory() -> Callable[..., Place]:
    return make_place


@pytest.fixture
async def mongo_db():
    """Fresh mongomock database carrying the unique profile index."""
    db = AsyncMongoMockClient()["wandr_test"]
    await db[PROFILES_COLLECTION].create_index("user_id", unique=True)
    return db


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def profile_store() -> InMemoryTasteProfileStore:
    return InMemoryTasteProfileStore()


@pytest.fixture
def profile_service(profile_store) -> TasteProfileService:
    return TasteProfileService(profile_store)


@pytest.fixture
def scorer(settings):
    hybrid = HybridScorer(settings)
    yield hybrid
    hybrid.shutdown()


@pytest.fixture
def midday_context() -> ContextInsights:
    return ContextInsights(time_of_day=TimeOfDay.LUNCH, season=Season.SUMMER)


@pytest.fixture
def build_orchestrator(settings, history_store, profile_store, scorer):
    """Factory: orchestrator over a static catalog with deterministic selection."""

    def _build(
        places: Iterable[Place] = (),
        *,
        place_search=None,
        context=None,
        history=None,
        rng: Optional[random.Random] = None,
    ) -> SuggestionOrchestrator:
        return SuggestionOrchestrator(
            place_search=place_search or InMemoryPlaceSearch(places),
            history=history if history is not None else history_store,
            profiles=profile_store,
            scorer=scorer,
            optimizer=RouteOptimizer(exact_max_points=settings.EXACT_SOLVER_MAX_POINTS),
            context=context,
            settings=settings,
            rng=rng or NoExploreRandom(),
            clock=lambda: NOW,
        )

    return _build


def ids(items: Iterable) -> List[str]:
    return [getattr(item, "place", item).id for item in items]
