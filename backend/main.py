"""
main.py
───────
WANDR — personalized place ranking & route orchestration.
FastAPI application entry point.
"""

import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from motor.motor_asyncio import AsyncIOMotorClient

from api.v1.feedback import router as feedback_router
from api.v1.history import router as history_router
from api.v1.profile import router as profile_router
from api.v1.routes import router as routes_router
from api.v1.suggestions import router as suggestions_router
from core.config import Settings, get_settings
from core.database import initialize_db
from core.security import setup_security
from services.context import ContextProvider, WeatherContextProvider
from services.history_store import InMemoryHistoryStore, MongoHistoryStore
from services.hybrid_scorer import HybridScorer
from services.orchestrator import SuggestionOrchestrator
from services.place_search import InMemoryPlaceSearch, MongoPlaceSearch, PlaceSearch
from services.route_optimizer import RouteOptimizer
from services.taste_profile_store import (
    InMemoryTasteProfileStore,
    MongoTasteProfileStore,
    TasteProfileService,
)

# ── Logging ─────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("wandr")


def create_app(
    settings: Optional[Settings] = None,
    place_search: Optional[PlaceSearch] = None,
    context: Optional[ContextProvider] = None,
) -> FastAPI:
    """Build the application; ``place_search`` / ``context`` override the defaults."""
    settings = settings or get_settings()

    # ── Lifespan (startup / shutdown) ──────────────────────────────────
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build storage and services once; tear them down on shutdown."""
        mongo_client = None
        limits = {
            "suggestion_limit": settings.SUGGESTION_HISTORY_LIMIT,
            "route_limit": settings.ROUTE_HISTORY_LIMIT,
            "exclusion_window": settings.EXCLUSION_WINDOW,
        }

        if settings.STORAGE_BACKEND == "mongo":
            logger.info("Connecting to MongoDB …")
            mongo_client = AsyncIOMotorClient(settings.MONGODB_URL)
            db = mongo_client.get_default_database(settings.MONGODB_DB)
            logger.info("MongoDB connected ✓")

            # Ensure required indexes exist (idempotent)
            await initialize_db(db)
            logger.info("Database initialization complete ✓")

            history_store = MongoHistoryStore(db, **limits)
            profile_store = MongoTasteProfileStore(db)
            search = place_search or MongoPlaceSearch(db)
        else:
            logger.info("Using in-memory storage backend")
            history_store = InMemoryHistoryStore(**limits)
            profile_store = InMemoryTasteProfileStore()
            search = place_search or InMemoryPlaceSearch()

        scorer = HybridScorer(settings)
        optimizer = RouteOptimizer(exact_max_points=settings.EXACT_SOLVER_MAX_POINTS)

        app.state.settings = settings
        app.state.history_store = history_store
        app.state.profile_service = TasteProfileService(profile_store)
        app.state.route_optimizer = optimizer
        app.state.orchestrator = SuggestionOrchestrator(
            place_search=search,
            history=history_store,
            profiles=profile_store,
            scorer=scorer,
            optimizer=optimizer,
            context=context or WeatherContextProvider(settings.WEATHERAPI_API_KEY, settings.WEATHER_TIMEOUT),
            settings=settings,
            rng=random.Random(settings.DIVERSITY_SEED),
        )

        yield  # ← application runs here

        scorer.shutdown()
        if mongo_client is not None:
            logger.info("Shutting down MongoDB connection …")
            mongo_client.close()
            logger.info("MongoDB disconnected ✓")

    # ── App factory ─────────────────────────────────────────────────────
    app = FastAPI(
        title="WANDR",
        version="1.0.0",
        description="Personalized place ranking & route orchestration — API",
        lifespan=lifespan,
    )

    # Wire security middleware (headers, CORS, exception handlers)
    setup_security(app, settings)

    # ── Routers ─────────────────────────────────────────────────────────
    app.include_router(suggestions_router, prefix="/api/v1")
    app.include_router(routes_router, prefix="/api/v1")
    app.include_router(feedback_router, prefix="/api/v1")
    app.include_router(profile_router, prefix="/api/v1")
    app.include_router(history_router, prefix="/api/v1")

    # ── Health check ────────────────────────────────────────────────────
    @app.get("/health", tags=["ops"])
    async def health_check():
        """Lightweight liveness probe."""
        return {"status": "healthy", "storage": settings.STORAGE_BACKEND}

    return app


app = create_app()
