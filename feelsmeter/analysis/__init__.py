"""Fuzzy matching, genre feature inference and feels scoring."""

from .feature_profiles import FeatureProfileStore, FeatureVector
from .feels_scorer import MoodLabel, ScoreEngine, calculate_feels_score
from .genre_inferencer import GenreFeatureInferencer, InferredFeatures
from .string_matcher import combined_score, find_best_match, similarity_ratio

__all__ = [
    "FeatureProfileStore",
    "FeatureVector",
    "GenreFeatureInferencer",
    "InferredFeatures",
    "MoodLabel",
    "ScoreEngine",
    "calculate_feels_score",
    "combined_score",
    "find_best_match",
    "similarity_ratio",
]
