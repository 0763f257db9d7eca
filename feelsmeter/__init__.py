"""
Feels Meter

Estimates how intense a YouTube music video feels: parses the video title
into artist and song, resolves the track on MusicBrainz, infers audio
features from its genres and maps them to a 0-100 feels score.
"""

__version__ = "1.0.0"
__author__ = "Feels Meter Team"

from .config import FeelsMeterConfig
from .orchestrator import MatchOrchestrator, MatchResult
from .title_parser import TitleParser

__all__ = ["FeelsMeterConfig", "MatchOrchestrator", "MatchResult", "TitleParser"]
