"""
services/category_mapper.py
───────────────────────────
Maps catalog category strings to weighted interest vectors.

Pure and table-driven. Each recognized category maps to 1–3 interest
dimensions with independent weights. Lookup order:

  1. the whole normalized string        ("art_gallery")
  2. each comma-separated token         ("restaurant,point_of_interest")
  3. keyword containment, longest first ("turkish_restaurant" → restaurant)

Unrecognized or empty categories map to an empty vector.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from models.taste import Interest, InterestVector

_C, _F, _N, _NL = Interest.CULTURE, Interest.FOOD, Interest.NATURE, Interest.NIGHTLIFE
_SH, _A, _W, _SP = Interest.SHOPPING, Interest.ART, Interest.WELLNESS, Interest.SPORTS

CATEGORY_INTERESTS: Mapping[str, Mapping[Interest, float]] = MappingProxyType({
    # ── Food & dining ───────────────────────────────────────────────────
    "restaurant": {_F: 1.0},
    "cafe": {_F: 0.8, _C: 0.2},
    "coffee": {_F: 0.8, _C: 0.2},
    "bar": {_NL: 0.8, _F: 0.2},
    "bakery": {_F: 0.9, _SH: 0.1},
    "dessert": {_F: 1.0},
    "meal_delivery": {_F: 1.0},
    "meal_takeaway": {_F: 1.0},
    "food": {_F: 1.0},
    # ── Culture & history ───────────────────────────────────────────────
    "museum": {_C: 1.0},
    "art_gallery": {_A: 0.8, _C: 0.2},
    "tourist_attraction": {_C: 0.7, _N: 0.3},
    "point_of_interest": {_C: 0.5, _N: 0.3},
    "historical": {_C: 1.0},
    "culture": {_C: 1.0},
    "church": {_C: 0.8, _A: 0.2},
    "mosque": {_C: 0.8, _A: 0.2},
    "synagogue": {_C: 0.8, _A: 0.2},
    "hindu_temple": {_C: 0.8, _A: 0.2},
    "place_of_worship": {_C: 0.7, _A: 0.3},
    "library": {_C: 0.8, _A: 0.2},
    # ── Nature & outdoors ───────────────────────────────────────────────
    "park": {_N: 1.0},
    "natural_feature": {_N: 1.0},
    "campground": {_N: 0.9, _SP: 0.1},
    "hiking_area": {_N: 0.7, _SP: 0.3},
    "zoo": {_N: 0.7, _C: 0.3},
    "aquarium": {_N: 0.7, _C: 0.3},
    "botanical_garden": {_N: 0.9, _A: 0.1},
    "beach": {_N: 0.9, _SP: 0.1},
    "mountain": {_N: 1.0},
    "lake": {_N: 1.0},
    "river": {_N: 1.0},
    # ── Nightlife & entertainment ───────────────────────────────────────
    "night_club": {_NL: 1.0},
    "casino": {_NL: 0.9, _C: 0.1},
    "movie_theater": {_NL: 0.6, _C: 0.4},
    "bowling_alley": {_NL: 0.5, _SP: 0.5},
    "amusement_park": {_NL: 0.6, _N: 0.4},
    "stadium": {_SP: 0.7, _NL: 0.3},
    "performing_arts_theater": {_A: 0.8, _NL: 0.2},
    # ── Shopping ────────────────────────────────────────────────────────
    "shopping_mall": {_SH: 1.0},
    "store": {_SH: 1.0},
    "clothing_store": {_SH: 1.0},
    "jewelry_store": {_SH: 0.9, _A: 0.1},
    "book_store": {_SH: 0.7, _C: 0.3},
    "supermarket": {_SH: 1.0},
    "market": {_SH: 0.8, _C: 0.2},
    "bazaar": {_SH: 0.8, _C: 0.2},
    # ── Art & creativity ────────────────────────────────────────────────
    "art_studio": {_A: 1.0},
    "cultural_center": {_A: 0.6, _C: 0.4},
    "art": {_A: 1.0},
    "gallery": {_A: 1.0},
    "theater": {_A: 0.8, _NL: 0.2},
    "opera_house": {_A: 0.9, _C: 0.1},
    "concert_hall": {_A: 0.7, _NL: 0.3},
    # ── Wellness ────────────────────────────────────────────────────────
    "spa": {_W: 1.0},
    "yoga_studio": {_W: 1.0},
    "beauty_salon": {_W: 0.9},
    "hair_salon": {_W: 0.8},
    "wellness": {_W: 1.0},
    "health": {_W: 1.0},
    # ── Sports & activities ─────────────────────────────────────────────
    "gym": {_SP: 0.7, _W: 0.3},
    "fitness_center": {_W: 0.7, _SP: 0.3},
    "sports_complex": {_SP: 1.0},
    "sports_club": {_SP: 1.0},
    "golf_course": {_SP: 1.0},
    "tennis_court": {_SP: 1.0},
    "swimming_pool": {_SP: 0.7, _W: 0.3},
    "ski_resort": {_SP: 0.8, _N: 0.2},
    "marina": {_SP: 0.6, _N: 0.4},
})

# Keyword containment is tried longest-key-first so "art_gallery" wins over "art".
_KEYS_BY_LENGTH: List[str] = sorted(CATEGORY_INTERESTS, key=lambda k: (-len(k), k))


def _normalize(category: str) -> str:
    return category.strip().lower().replace(" ", "_").replace("-", "_")


def _lookup(token: str) -> Optional[Mapping[Interest, float]]:
    return CATEGORY_INTERESTS.get(token)


def map_to_interests(category: Optional[str]) -> InterestVector:
    """Return the interest vector for ``category``; ``{}`` when unrecognized."""
    if not category or not category.strip():
        return {}

    normalized = _normalize(category)
    direct = _lookup(normalized)
    if direct is not None:
        return dict(direct)

    tokens = [_normalize(t) for t in category.split(",") if t.strip()]
    for token in tokens:
        hit = _lookup(token)
        if hit is not None:
            return dict(hit)

    for token in tokens:
        for key in _KEYS_BY_LENGTH:
            if key in token:
                return dict(CATEGORY_INTERESTS[key])
    return {}


def dominant_interest(category: Optional[str]) -> Optional[Interest]:
    """Highest-weight interest for ``category``, or None ("none")."""
    interests = map_to_interests(category)
    if not interests:
        return None
    # Ties resolve in enum declaration order for determinism.
    order = {interest: i for i, interest in enumerate(Interest)}
    return max(interests.items(), key=lambda kv: (kv[1], -order[kv[0]]))[0]


def interest_overlap(a: Dict[Interest, float], b: Dict[Interest, float]) -> float:
    """Weighted Jaccard overlap of two interest vectors, in [0, 1]."""
    keys = set(a) | set(b)
    if not keys:
        return 0.0
    num = sum(min(a.get(k, 0.0), b.get(k, 0.0)) for k in keys)
    den = sum(max(a.get(k, 0.0), b.get(k, 0.0)) for k in keys)
    return num / den if den else 0.0
