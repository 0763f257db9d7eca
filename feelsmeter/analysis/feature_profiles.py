"""Static genre to audio-feature profiles.

The table is built once at import and exposed read-only, so concurrent
callers share it without coordination.
"""

from dataclasses import asdict, dataclass, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

ENERGY_RANGE = (0.0, 1.0)
TEMPO_RANGE = (60.0, 200.0)
LOUDNESS_RANGE = (-30.0, -5.0)
UNIT_RANGE = (0.0, 1.0)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class FeatureVector:
    """Six-dimensional proxy for audio character. Always fully populated."""

    energy: float = 0.5
    tempo: float = 120.0
    danceability: float = 0.5
    loudness: float = -10.0
    valence: float = 0.5
    acousticness: float = 0.5

    def clamped(self) -> "FeatureVector":
        return FeatureVector(
            energy=clamp(self.energy, *ENERGY_RANGE),
            tempo=clamp(self.tempo, *TEMPO_RANGE),
            danceability=clamp(self.danceability, *UNIT_RANGE),
            loudness=clamp(self.loudness, *LOUDNESS_RANGE),
            valence=clamp(self.valence, *UNIT_RANGE),
            acousticness=clamp(self.acousticness, *UNIT_RANGE),
        )

    def with_changes(self, **changes: float) -> "FeatureVector":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FeatureVector":
        """Build a vector, substituting neutral defaults for missing or bad fields."""
        if not data or not isinstance(data, Mapping):
            return cls()
        values = {}
        for name in cls.__dataclass_fields__:
            raw = data.get(name)
            if raw is None:
                continue
            try:
                values[name] = float(raw)
            except (TypeError, ValueError):
                continue
        return cls(**values)

    @classmethod
    def average(cls, vectors: Sequence["FeatureVector"]) -> "FeatureVector":
        """Component-wise arithmetic mean; tempo is rounded to whole BPM."""
        if not vectors:
            return cls()
        count = len(vectors)
        return cls(
            energy=sum(v.energy for v in vectors) / count,
            tempo=float(round(sum(v.tempo for v in vectors) / count)),
            danceability=sum(v.danceability for v in vectors) / count,
            loudness=sum(v.loudness for v in vectors) / count,
            valence=sum(v.valence for v in vectors) / count,
            acousticness=sum(v.acousticness for v in vectors) / count,
        )


NEUTRAL_PROFILE = FeatureVector()

CLASSICAL_PROFILE = FeatureVector(0.4, 100, 0.2, -12, 0.5, 0.95)
ELECTRONIC_PROFILE = FeatureVector(0.8, 128, 0.85, -6, 0.7, 0.05)


def _profile(energy, tempo, danceability, loudness, valence, acousticness) -> FeatureVector:
    return FeatureVector(energy, float(tempo), danceability, float(loudness), valence, acousticness)


# energy, tempo, danceability, loudness, valence, acousticness
_GENRE_PROFILES = {
    # Rock & metal
    "metal": _profile(0.95, 160, 0.5, -5, 0.5, 0.1),
    "heavy metal": _profile(0.98, 170, 0.45, -4, 0.4, 0.05),
    "death metal": _profile(1.0, 180, 0.4, -3, 0.3, 0.02),
    "punk": _profile(0.9, 170, 0.6, -5, 0.5, 0.15),
    "hardcore": _profile(0.95, 180, 0.55, -4, 0.4, 0.1),
    "rock": _profile(0.75, 130, 0.55, -6, 0.6, 0.2),
    "hard rock": _profile(0.85, 140, 0.6, -5, 0.55, 0.15),
    "alternative": _profile(0.65, 120, 0.55, -7, 0.5, 0.25),
    # Electronic & dance
    "electronic": _profile(0.8, 128, 0.85, -6, 0.7, 0.05),
    "techno": _profile(0.85, 130, 0.9, -5, 0.6, 0.02),
    "house": _profile(0.8, 125, 0.9, -6, 0.75, 0.05),
    "trance": _profile(0.85, 138, 0.85, -5, 0.7, 0.03),
    "dubstep": _profile(0.9, 140, 0.8, -4, 0.6, 0.02),
    "drum and bass": _profile(0.92, 170, 0.85, -5, 0.65, 0.03),
    "edm": _profile(0.88, 128, 0.9, -4, 0.8, 0.02),
    "dance": _profile(0.8, 125, 0.92, -6, 0.8, 0.05),
    # Hip-hop & rap
    "hip hop": _profile(0.7, 95, 0.8, -6, 0.6, 0.1),
    "rap": _profile(0.7, 95, 0.75, -6, 0.6, 0.1),
    "trap": _profile(0.75, 140, 0.8, -5, 0.55, 0.05),
    # Pop
    "pop": _profile(0.65, 118, 0.7, -6, 0.7, 0.15),
    "indie pop": _profile(0.6, 115, 0.65, -7, 0.65, 0.3),
    "synth pop": _profile(0.7, 120, 0.75, -6, 0.75, 0.1),
    # R&B & soul
    "r&b": _profile(0.55, 90, 0.65, -8, 0.6, 0.25),
    "soul": _profile(0.6, 95, 0.6, -8, 0.65, 0.4),
    "funk": _profile(0.75, 110, 0.85, -7, 0.75, 0.2),
    # Jazz & blues
    "jazz": _profile(0.45, 105, 0.5, -12, 0.55, 0.7),
    "blues": _profile(0.5, 90, 0.45, -10, 0.4, 0.6),
    # Classical
    "classical": _profile(0.4, 100, 0.2, -15, 0.5, 0.95),
    "orchestral": _profile(0.45, 105, 0.2, -13, 0.55, 0.95),
    # Country & folk
    "country": _profile(0.55, 110, 0.6, -8, 0.65, 0.6),
    "folk": _profile(0.45, 100, 0.45, -10, 0.55, 0.8),
    "acoustic": _profile(0.4, 95, 0.4, -12, 0.6, 0.9),
    # Ambient & chill
    "ambient": _profile(0.2, 70, 0.3, -18, 0.5, 0.4),
    "chillout": _profile(0.25, 80, 0.35, -15, 0.6, 0.35),
    "downtempo": _profile(0.3, 85, 0.4, -14, 0.55, 0.3),
    "lounge": _profile(0.35, 90, 0.45, -13, 0.6, 0.4),
    # Reggae & latin
    "reggae": _profile(0.55, 80, 0.75, -8, 0.7, 0.3),
    "latin": _profile(0.7, 115, 0.85, -7, 0.75, 0.25),
    "salsa": _profile(0.75, 120, 0.9, -6, 0.8, 0.3),
    # Indie
    "indie": _profile(0.55, 110, 0.55, -8, 0.55, 0.35),
    "indie rock": _profile(0.65, 120, 0.6, -7, 0.6, 0.25),
    # Experimental
    "experimental": _profile(0.5, 110, 0.4, -10, 0.45, 0.3),
    "noise": _profile(0.85, 120, 0.3, -4, 0.3, 0.1),
}

GENRE_PROFILES: Mapping[str, FeatureVector] = MappingProxyType(_GENRE_PROFILES)
DEFAULT_GENRE = "pop"


class FeatureProfileStore:
    """Read-only lookup of genre profiles by substring match on tag text."""

    def __init__(self, profiles: Mapping[str, FeatureVector] = GENRE_PROFILES):
        self._profiles = MappingProxyType(dict(profiles))

    @property
    def profiles(self) -> Mapping[str, FeatureVector]:
        return self._profiles

    @property
    def default_profile(self) -> FeatureVector:
        return self._profiles.get(DEFAULT_GENRE, NEUTRAL_PROFILE)

    def get(self, genre: str) -> Optional[FeatureVector]:
        return self._profiles.get(genre.lower()) if genre else None

    def match(self, genre_tags: Optional[Sequence[str]]) -> List[Tuple[str, FeatureVector]]:
        """Every profile whose key occurs in the joined, lowercased tag text."""
        if not genre_tags:
            return []
        if isinstance(genre_tags, str):
            genre_tags = [genre_tags]
        tag_text = " ".join(str(tag) for tag in genre_tags if tag).lower()
        if not tag_text:
            return []
        return [(key, profile) for key, profile in self._profiles.items() if key in tag_text]

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, genre: object) -> bool:
        return genre in self._profiles
