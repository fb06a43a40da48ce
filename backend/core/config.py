"""
core/config.py
──────────────
Application configuration loaded from environment variables via pydantic-settings.
The .env file in the backend root is parsed automatically.

Settings are frozen: the scoring weights and limits read here are loaded
once at startup and handed to the orchestrator as an immutable value.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Floating-point slack when checking that the weights fit in [0, 1].
_WEIGHT_SUM_TOLERANCE = 1e-6


class ScoringWeights(BaseModel):
    """
    Weights applied to each scoring dimension of the hybrid scorer.

    The weights must be non-negative and sum to at most 1.0. Any unused
    weight (sum < 1) is simply not distributed, so a final score can never
    leave [0, 1].
    """

    model_config = ConfigDict(frozen=True)

    implicit: float = Field(default=0.25, ge=0.0, le=1.0)
    explicit: float = Field(default=0.30, ge=0.0, le=1.0)
    novelty: float = Field(default=0.20, ge=0.0, le=1.0)
    context: float = Field(default=0.15, ge=0.0, le=1.0)
    quality: float = Field(default=0.10, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_sum(self) -> "ScoringWeights":
        if self.total > 1.0 + _WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Scoring weights sum to {self.total:.4f}; must be <= 1.0")
        return self

    @property
    def total(self) -> float:
        return self.implicit + self.explicit + self.novelty + self.context + self.quality

    def as_dict(self) -> Dict[str, float]:
        return {
            "implicit": self.implicit,
            "explicit": self.explicit,
            "novelty": self.novelty,
            "context": self.context,
            "quality": self.quality,
        }


class Settings(BaseSettings):
    """Central settings sourced from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        frozen=True,
        extra="ignore",
    )

    # ── Storage ─────────────────────────────────────────────────────────
    MONGODB_URL: str = "mongodb://localhost:27017/wandr_db"
    MONGODB_DB: str = "wandr_db"
    STORAGE_BACKEND: str = Field(default="mongo", pattern="^(mongo|memory)$")

    # ── External APIs ───────────────────────────────────────────────────
    WEATHERAPI_API_KEY: str = ""
    WEATHER_TIMEOUT: float = 2.0  # seconds

    # ── CORS ────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000"

    # ── Scoring weights ─────────────────────────────────────────────────
    WEIGHT_IMPLICIT: float = 0.25
    WEIGHT_EXPLICIT: float = 0.30
    WEIGHT_NOVELTY: float = 0.20
    WEIGHT_CONTEXT: float = 0.15
    WEIGHT_QUALITY: float = 0.10

    # ── Scoring parameters ──────────────────────────────────────────────
    REVIEW_SMOOTHING: float = Field(default=50.0, gt=0.0)
    NEAR_DISTANCE_M: float = 500.0
    AVOIDANCE_HALF_LIFE_DAYS: float = Field(default=30.0, gt=0.0)
    NOVELTY_WINDOW: int = Field(default=10, ge=1)
    NOVELTY_TAU_DAYS: float = Field(default=30.0, gt=0.0)
    SCORING_WORKERS: int = Field(default=4, ge=1, le=64)

    # ── Routing ─────────────────────────────────────────────────────────
    EXACT_SOLVER_MAX_POINTS: int = Field(default=10, ge=2, le=14)

    # ── History limits ──────────────────────────────────────────────────
    SUGGESTION_HISTORY_LIMIT: int = 20
    ROUTE_HISTORY_LIMIT: int = 3
    EXCLUSION_WINDOW: int = 3

    # ── Requests ────────────────────────────────────────────────────────
    DEFAULT_RADIUS_M: int = 3000
    REQUEST_TIMEOUT: float = 10.0  # seconds
    DIVERSITY_SEED: Optional[int] = None

    @property
    def cors_origin_list(self) -> List[str]:
        """Parse the comma-separated CORS_ORIGINS string into a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def scoring_weights(self) -> ScoringWeights:
        """Build the validated, immutable weight set from the flat env values."""
        return ScoringWeights(
            implicit=self.WEIGHT_IMPLICIT,
            explicit=self.WEIGHT_EXPLICIT,
            novelty=self.WEIGHT_NOVELTY,
            context=self.WEIGHT_CONTEXT,
            quality=self.WEIGHT_QUALITY,
        )

    @model_validator(mode="after")
    def _check_weights(self) -> "Settings":
        # weights are validated at load time
        self.scoring_weights
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance (created once per process)."""
    return Settings()
