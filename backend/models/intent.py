"""
models/intent.py
────────────────
Suggestion intents and their static policy table.

The table is immutable process-wide configuration: it is built once at import
time and exposed through a read-only mapping.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Intent(str, Enum):
    """What the user is asking for; drives filtering, diversity and routing."""

    QUICK_SUGGESTION = "QUICK_SUGGESTION"
    FOOD_ONLY = "FOOD_ONLY"
    ACTIVITY_ONLY = "ACTIVITY_ONLY"
    ROUTE_PLANNING = "ROUTE_PLANNING"
    TRY_SOMETHING_NEW = "TRY_SOMETHING_NEW"


class CategoryRule(str, Enum):
    ANY = "any"
    FOOD_ONLY = "food_only"
    NON_FOOD = "non_food"


class SelectionStrategy(str, Enum):
    EPSILON_GREEDY = "epsilon_greedy"
    SOFTMAX = "softmax"
    MMR = "mmr"
    THOMPSON = "thompson"


class DiversityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Food allow-list; a category matches when one of its types (or a word of a
# snake_case type such as ``chinese_restaurant``) is in this set.
FOOD_CATEGORIES: Tuple[str, ...] = (
    "restaurant", "cafe", "bar", "bakery", "meal_takeaway",
    "meal_delivery", "food", "dessert", "coffee", "breakfast",
    "lunch", "dinner", "brunch",
)


class IntentPolicy(BaseModel):
    """Static rules for one intent."""

    model_config = ConfigDict(frozen=True)

    intent: Intent
    display_name: str
    category_rule: CategoryRule = CategoryRule.ANY
    max_results: int = Field(..., ge=1)
    max_results_configurable: bool = False
    route_required: bool = False
    diversity: DiversityLevel = DiversityLevel.LOW
    diversity_factor: float = Field(..., ge=0.0, le=1.0)
    strategy: SelectionStrategy = SelectionStrategy.EPSILON_GREEDY
    strategy_param: float = 0.0
    novelty_weighted: bool = False
    default_walking_distance_m: int = 3000
    category_hint: Optional[str] = None


INTENT_POLICIES: Mapping[Intent, IntentPolicy] = MappingProxyType({
    Intent.QUICK_SUGGESTION: IntentPolicy(
        intent=Intent.QUICK_SUGGESTION,
        display_name="Quick Suggestion",
        max_results=3,
        diversity=DiversityLevel.LOW,
        diversity_factor=0.3,
        strategy=SelectionStrategy.EPSILON_GREEDY,
        strategy_param=0.1,
        default_walking_distance_m=1000,
    ),
    Intent.FOOD_ONLY: IntentPolicy(
        intent=Intent.FOOD_ONLY,
        display_name="Food & Dining",
        category_rule=CategoryRule.FOOD_ONLY,
        max_results=10,
        max_results_configurable=True,
        diversity=DiversityLevel.LOW,
        diversity_factor=0.5,
        strategy=SelectionStrategy.EPSILON_GREEDY,
        strategy_param=0.05,
        default_walking_distance_m=2000,
        category_hint="food",
    ),
    Intent.ACTIVITY_ONLY: IntentPolicy(
        intent=Intent.ACTIVITY_ONLY,
        display_name="Activities & Entertainment",
        category_rule=CategoryRule.NON_FOOD,
        max_results=10,
        max_results_configurable=True,
        diversity=DiversityLevel.MEDIUM,
        diversity_factor=0.6,
        strategy=SelectionStrategy.MMR,
        strategy_param=0.7,
        default_walking_distance_m=3000,
    ),
    Intent.ROUTE_PLANNING: IntentPolicy(
        intent=Intent.ROUTE_PLANNING,
        display_name="Day Plan / Route",
        max_results=8,
        max_results_configurable=True,
        route_required=True,
        diversity=DiversityLevel.MEDIUM,
        diversity_factor=0.8,
        strategy=SelectionStrategy.MMR,
        strategy_param=0.6,
        default_walking_distance_m=5000,
    ),
    Intent.TRY_SOMETHING_NEW: IntentPolicy(
        intent=Intent.TRY_SOMETHING_NEW,
        display_name="Try Something New",
        max_results=5,
        max_results_configurable=True,
        diversity=DiversityLevel.HIGH,
        diversity_factor=1.0,
        strategy=SelectionStrategy.SOFTMAX,
        strategy_param=0.3,
        novelty_weighted=True,
        default_walking_distance_m=4000,
    ),
})


def policy_for(intent: Intent) -> IntentPolicy:
    return INTENT_POLICIES[intent]
