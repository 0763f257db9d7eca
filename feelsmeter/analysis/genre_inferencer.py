"""Genre-based audio feature inference.

Genre tags are a cheap, strong proxy for energy, tempo and mood when the
audio signal is unavailable. Matched genre profiles are averaged, then song
title keywords nudge the result for well-known outliers.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from ..config import KeywordAdjustmentConfig
from .feature_profiles import (
    CLASSICAL_PROFILE,
    ELECTRONIC_PROFILE,
    NEUTRAL_PROFILE,
    FeatureProfileStore,
    FeatureVector,
)

logger = logging.getLogger(__name__)

CLASSICAL_SIGNALS = re.compile(r"\b(symphony|concerto|sonata|mozart|beethoven|bach)\b")
ELECTRONIC_SIGNALS = re.compile(r"\b(dj|remix|mix|dubstep|techno|edm|electronic)\b")

INTENSE_KEYWORDS = re.compile(r"\b(rage|aggressive|intense|power|extreme|brutal)\b")
CHILL_KEYWORDS = re.compile(r"\b(chill|calm|relax|peaceful|ambient|slow|soft)\b")
HAPPY_KEYWORDS = re.compile(r"\b(happy|joy|sunshine|bright|upbeat|party)\b")
SAD_KEYWORDS = re.compile(r"\b(sad|blue|tears|lonely|heartbreak|melancholy)\b")
ACOUSTIC_KEYWORDS = re.compile(r"\b(acoustic|unplugged|stripped|piano|guitar)\b")

NO_GENRE_CONFIDENCE = 0.3


@dataclass(frozen=True)
class InferredFeatures:
    """Feature vector plus how it was derived."""

    features: FeatureVector
    confidence: float
    matched_genres: Tuple[str, ...] = field(default_factory=tuple)
    source: str = "genre-heuristic"


def genre_confidence(matched_count: int) -> float:
    """Step function of the number of distinct matched genre profiles."""
    if matched_count <= 0:
        return 0.3
    if matched_count == 1:
        return 0.6
    if matched_count == 2:
        return 0.7
    return 0.8


class GenreFeatureInferencer:
    """Infer a FeatureVector from genre tags, artist and song title."""

    def __init__(
        self,
        store: Optional[FeatureProfileStore] = None,
        adjustments: Optional[KeywordAdjustmentConfig] = None,
    ):
        self.store = store or FeatureProfileStore()
        self.adjustments = adjustments or KeywordAdjustmentConfig()

    def infer_features(
        self,
        artist: Optional[str] = None,
        song: Optional[str] = None,
        genre_tags: Optional[Sequence[str]] = None,
    ) -> FeatureVector:
        return self.infer(artist, song, genre_tags).features

    def infer(
        self,
        artist: Optional[str] = None,
        song: Optional[str] = None,
        genre_tags: Optional[Sequence[str]] = None,
    ) -> InferredFeatures:
        if isinstance(genre_tags, str):
            genre_tags = [genre_tags]
        tags = [t for t in (genre_tags or []) if t]
        if not tags:
            return InferredFeatures(
                features=self.infer_from_names(artist, song),
                confidence=NO_GENRE_CONFIDENCE,
                source="name-heuristic",
            )

        matched = self.store.match(tags)
        if matched:
            base = FeatureVector.average([profile for _, profile in matched])
        else:
            logger.debug(f"No genre profile for tags {tags}, using default profile")
            base = self.store.default_profile

        features = self.adjust_for_title_keywords(song, base).clamped()
        return InferredFeatures(
            features=features,
            confidence=genre_confidence(len(matched)),
            matched_genres=tuple(key for key, _ in matched),
        )

    def infer_from_names(self, artist: Optional[str], song: Optional[str]) -> FeatureVector:
        """Canned vectors for tagless tracks, picked by signal words."""
        combined = f"{artist or ''} {song or ''}".lower()

        if CLASSICAL_SIGNALS.search(combined):
            return CLASSICAL_PROFILE
        if ELECTRONIC_SIGNALS.search(combined):
            return ELECTRONIC_PROFILE
        return NEUTRAL_PROFILE

    def adjust_for_title_keywords(
        self, song: Optional[str], features: FeatureVector
    ) -> FeatureVector:
        """Apply every keyword class that fires; nudges compose."""
        if not song:
            return features

        title = song.lower()
        adj = self.adjustments
        energy = features.energy
        tempo = features.tempo
        loudness = features.loudness
        valence = features.valence
        acousticness = features.acousticness

        if INTENSE_KEYWORDS.search(title):
            energy = min(1.0, energy + adj.intense_energy)
            loudness = min(-5.0, loudness + adj.intense_loudness)

        if CHILL_KEYWORDS.search(title):
            energy = max(adj.chill_energy_floor, energy + adj.chill_energy)
            tempo = max(60.0, tempo + adj.chill_tempo)

        if HAPPY_KEYWORDS.search(title):
            valence = min(1.0, valence + adj.happy_valence)

        if SAD_KEYWORDS.search(title):
            valence = max(adj.sad_valence_floor, valence + adj.sad_valence)
            energy = max(adj.sad_energy_floor, energy + adj.sad_energy)

        if ACOUSTIC_KEYWORDS.search(title):
            acousticness = min(1.0, acousticness + adj.acoustic_acousticness)

        return features.with_changes(
            energy=energy,
            tempo=tempo,
            loudness=loudness,
            valence=valence,
            acousticness=acousticness,
        )
