"""
models/quiz.py
──────────────
Server-driven taste quiz.

Each step offers a few options; picking an option applies its deltas to a
neutral (0.5) profile. The quiz is static process-wide configuration, built
once at import time like the intent table.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

QUIZ_VERSION = "v1"


class QuizOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    deltas: Dict[str, float] = Field(default_factory=dict, exclude=True)


class QuizStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    type: str = "single-select"
    options: Tuple[QuizOption, ...]

    def option(self, option_id: str) -> Optional[QuizOption]:
        return next((o for o in self.options if o.id == option_id), None)


class TasteQuiz(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    steps: Tuple[QuizStep, ...]

    def step(self, step_id: str) -> Optional[QuizStep]:
        return next((s for s in self.steps if s.id == step_id), None)


def _option(option_id: str, label: str, **deltas: float) -> QuizOption:
    return QuizOption(id=option_id, label=label, deltas=deltas)


TASTE_QUIZ = TasteQuiz(
    version=QUIZ_VERSION,
    steps=(
        QuizStep(
            id="free_day",
            title="You have a free afternoon. Where do you go?",
            options=(
                _option("museum", "A museum or historic site", CultureWeight=0.3, ArtWeight=0.15),
                _option("food_tour", "Wherever the food is", FoodWeight=0.3, TasteQualityWeight=0.15),
                _option("outdoors", "A park or the waterfront", NatureWeight=0.3, SpaciousnessWeight=0.15),
                _option("shops", "Markets and shops", ShoppingWeight=0.3, AtmosphereWeight=0.1),
            ),
        ),
        QuizStep(
            id="evening",
            title="And in the evening?",
            options=(
                _option("night_out", "Bars and live music", NightlifeWeight=0.3, AtmosphereWeight=0.15),
                _option("dinner", "A long dinner", FoodWeight=0.2, TasteQualityWeight=0.1),
                _option("quiet", "Something quiet", CalmnessWeight=0.3, NightlifeWeight=-0.2),
                _option("show", "A concert or a gallery opening", ArtWeight=0.3, CultureWeight=0.1),
            ),
        ),
        QuizStep(
            id="recharge",
            title="How do you recharge?",
            options=(
                _option("spa", "Spa or hammam", WellnessWeight=0.3, CalmnessWeight=0.15),
                _option("workout", "A run or a match", SportsWeight=0.3, NatureWeight=0.1),
                _option("coffee", "A good cafe and a book", FoodWeight=0.1, CalmnessWeight=0.2),
            ),
        ),
        QuizStep(
            id="vibe",
            title="Which places win you over?",
            options=(
                _option("design", "Beautifully designed", DesignWeight=0.3, ArtWeight=0.1),
                _option("lively", "Busy and lively", AtmosphereWeight=0.3, CalmnessWeight=-0.15),
                _option("roomy", "Open and uncrowded", SpaciousnessWeight=0.3, CalmnessWeight=0.1),
            ),
        ),
        QuizStep(
            id="discovery",
            title="Old favourites or somewhere new?",
            options=(
                _option("favourites", "Places I know I like", NoveltyTolerance=-0.3),
                _option("mix", "A bit of both"),
                _option("new", "Always somewhere new", NoveltyTolerance=0.4),
            ),
        ),
    ),
)

QUIZZES: Mapping[str, TasteQuiz] = MappingProxyType({TASTE_QUIZ.version: TASTE_QUIZ})
