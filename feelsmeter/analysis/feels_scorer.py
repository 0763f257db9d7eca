"""Feels score: reduce a FeatureVector to a single 0-100 intensity score.

Weights:
- energy (40%): primary indicator of intensity
- tempo (25%): normalized from BPM, ~200 max
- danceability (15%): rhythmic drive
- loudness (10%): normalized from the -30..-5 dB range
- valence (5%): musical positivity
- acousticness (5%): inverted, electronic scores higher
"""

import math
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .feature_profiles import FeatureVector, clamp

NEUTRAL_SCORE = 50

SCORE_WEIGHTS = {
    "energy": 0.40,
    "tempo": 0.25,
    "danceability": 0.15,
    "loudness": 0.10,
    "valence": 0.05,
    "acousticness": 0.05,
}


class MoodLabel(Enum):
    """Ordinal mood bands over the 0-100 score range."""

    VERY_CHILL = "Very Chill"
    RELAXED = "Relaxed"
    MODERATE = "Moderate"
    ENERGETIC = "Energetic"
    INTENSE = "Intense"

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def color(self) -> str:
        return MOOD_COLORS[self]


MOOD_COLORS = {
    MoodLabel.VERY_CHILL: "#4A90E2",  # blue
    MoodLabel.RELAXED: "#50C878",  # green
    MoodLabel.MODERATE: "#F5A623",  # yellow
    MoodLabel.ENERGETIC: "#F57C00",  # orange
    MoodLabel.INTENSE: "#E74C3C",  # red
}

# Lower bound of each band, highest first
_BAND_FLOORS = [
    (80, MoodLabel.INTENSE),
    (60, MoodLabel.ENERGETIC),
    (40, MoodLabel.MODERATE),
    (20, MoodLabel.RELAXED),
]

Features = Union[FeatureVector, Mapping[str, Any], None]


def _normalized_components(features: FeatureVector) -> Dict[str, float]:
    return {
        "energy": clamp(features.energy, 0.0, 1.0),
        "tempo": clamp(features.tempo / 200.0, 0.0, 1.0),
        "danceability": clamp(features.danceability, 0.0, 1.0),
        "loudness": clamp((features.loudness + 30.0) / 25.0, 0.0, 1.0),
        "valence": clamp(features.valence, 0.0, 1.0),
        "acousticness": clamp(1.0 - features.acousticness, 0.0, 1.0),
    }


def calculate_feels_score(features: Features) -> int:
    """Weighted 0-100 score; ``None`` maps to the neutral midpoint."""
    if features is None:
        return NEUTRAL_SCORE
    if not isinstance(features, FeatureVector):
        # Non-mapping input degrades to the neutral profile
        features = FeatureVector.from_mapping(features)

    components = _normalized_components(features)
    score = sum(components[name] * weight for name, weight in SCORE_WEIGHTS.items()) * 100

    # Round half up
    return int(clamp(math.floor(score + 0.5), 0, 100))


def _numeric_score(value: Any) -> Optional[float]:
    """The score as a float, or None when it is missing or not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(score) else score


def get_mood_label(score: Any) -> MoodLabel:
    """Band for ``score``; a missing or non-numeric score is treated as 50."""
    numeric = _numeric_score(score)
    if numeric is None:
        numeric = NEUTRAL_SCORE
    for floor, label in _BAND_FLOORS:
        if numeric >= floor:
            return label
    return MoodLabel.VERY_CHILL


def get_score_color(score: Any) -> str:
    return get_mood_label(score).color


def item_score(item: Any) -> Optional[float]:
    """Read ``feels_score`` from a mapping or an object."""
    if item is None:
        return None
    if isinstance(item, Mapping):
        return item.get("feels_score")
    return getattr(item, "feels_score", None)


def _score_or_neutral(item: Any) -> float:
    score = _numeric_score(item_score(item))
    return NEUTRAL_SCORE if score is None else score


def find_closest(items: Optional[Sequence[Any]], target: float) -> Optional[Any]:
    """Item whose score is nearest ``target``; first seen wins ties."""
    if not items:
        return None

    closest = None
    min_difference = math.inf
    for item in items:
        difference = abs(_score_or_neutral(item) - target)
        if difference < min_difference:
            min_difference = difference
            closest = item
    return closest


def sort_by_score(items: Optional[Sequence[Any]], order: str = "asc") -> List[Any]:
    """Stable sort into a new list; unscored items compare as 50."""
    if not items:
        return []
    return sorted(items, key=_score_or_neutral, reverse=(order == "desc"))


def empty_distribution() -> Dict[str, Any]:
    return {
        "total": 0,
        "average": 0,
        "min": 0,
        "max": 0,
        "ranges": {label.key: 0 for label in MoodLabel},
    }


def score_distribution(items: Optional[Sequence[Any]]) -> Dict[str, Any]:
    """Count, average, extremes and per-band counts of item scores."""
    if not items:
        return empty_distribution()

    scores = [_score_or_neutral(item) for item in items]
    distribution = empty_distribution()
    distribution.update(
        total=len(scores),
        average=int(math.floor(sum(scores) / len(scores) + 0.5)),
        min=min(scores),
        max=max(scores),
    )
    for score in scores:
        distribution["ranges"][get_mood_label(score).key] += 1
    return distribution


class ScoreEngine:
    """Object facade over the scoring functions."""

    score = staticmethod(calculate_feels_score)
    mood_label = staticmethod(get_mood_label)
    color = staticmethod(get_score_color)
    closest = staticmethod(find_closest)
    sort_by_score = staticmethod(sort_by_score)
    distribution = staticmethod(score_distribution)
