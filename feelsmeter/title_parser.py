"""Heuristic artist/song extraction from free-text video titles."""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple

from .config import ParserConfig

logger = logging.getLogger(__name__)

# Trailing decorations removed by clean_title, checked in this order
COMMON_SUFFIXES = (
    "(official video)",
    "(official music video)",
    "(official audio)",
    "(lyric video)",
    "(lyrics)",
    "[official video]",
    "[official music video]",
    "[official audio]",
    "[lyrics]",
    "(music video)",
    "(audio)",
    "(hd)",
    "(4k)",
    "(explicit)",
    "(clean)",
    "(radio edit)",
    "(extended)",
    "(remix)",
    "(remastered)",
)

_SUFFIX_PATTERNS = [
    re.compile(re.escape(suffix) + r"\s*$", re.IGNORECASE) for suffix in COMMON_SUFFIXES
]

# Trailing channel tokens removed in this order
_CHANNEL_SUFFIX_PATTERNS = [
    re.compile(r"vevo$", re.IGNORECASE),
    re.compile(r"official$", re.IGNORECASE),
    re.compile(r"music$", re.IGNORECASE),
]


class TitlePattern(Enum):
    """Which rule produced a parse, in precedence order."""

    DASH = "dash"
    BY = "by"
    COLON = "colon"
    PIPE = "pipe"
    CHANNEL_FALLBACK = "channel_fallback"
    LAST_RESORT = "last_resort"
    EMPTY = "empty"


@dataclass(frozen=True)
class RawTitle:
    """Immutable parser input."""

    title: str
    channel_hint: str = ""


@dataclass(frozen=True)
class ParsedIdentity:
    """Artist/song guess with a self-reported confidence."""

    artist: Optional[str] = None
    song: Optional[str] = None
    confidence: float = 0.0
    pattern: TitlePattern = TitlePattern.EMPTY

    @property
    def is_empty(self) -> bool:
        return not self.artist and not self.song

    def to_dict(self) -> Dict:
        return {"artist": self.artist, "song": self.song, "confidence": self.confidence}


# (variant, regex, artist group, song group)
STRUCTURAL_PATTERNS: List[Tuple[TitlePattern, Pattern, int, int]] = [
    # "Artist - Song"
    (TitlePattern.DASH, re.compile(r"^([^-]+)\s*-\s*(.+)$"), 1, 2),
    # "Song by Artist"
    (TitlePattern.BY, re.compile(r"^(.+)\s+by\s+(.+)$", re.IGNORECASE), 2, 1),
    # "Artist: Song"
    (TitlePattern.COLON, re.compile(r"^([^:]+):\s*(.+)$"), 1, 2),
    # "Artist | Song"
    (TitlePattern.PIPE, re.compile(r"^([^|]+)\|\s*(.+)$"), 1, 2),
]


def clean_title(title: str) -> str:
    """Lowercase, drop one trailing decoration and collapse whitespace.

    Only the first decoration (in ``COMMON_SUFFIXES`` order) found at the
    end of the title is removed, so stacked decorations keep the inner ones.
    """
    cleaned = title.lower()

    for pattern in _SUFFIX_PATTERNS:
        if pattern.search(cleaned):
            cleaned = pattern.sub("", cleaned, count=1)
            break

    return re.sub(r"\s+", " ", cleaned).strip()


def clean_channel_name(channel: str) -> str:
    """Strip trailing vevo/official/music tokens, preserving case."""
    cleaned = channel.strip()
    for pattern in _CHANNEL_SUFFIX_PATTERNS:
        cleaned = pattern.sub("", cleaned).strip()
    return cleaned


class TitleParser:
    """Ordered-pattern parser for "Artist - Song" style titles.

    Never raises: empty or malformed input produces an empty identity with
    zero confidence.
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or ParserConfig()

    def parse(self, title: Optional[str], channel_hint: Optional[str] = "") -> ParsedIdentity:
        if not title or not isinstance(title, str):
            return ParsedIdentity()

        channel = channel_hint if isinstance(channel_hint, str) else ""
        cleaned = clean_title(title)
        if not cleaned:
            return ParsedIdentity()

        for variant, regex, artist_group, song_group in STRUCTURAL_PATTERNS:
            match = regex.match(cleaned)
            if not match:
                continue

            artist = match.group(artist_group).strip()
            song = match.group(song_group).strip()
            if not artist or not song:
                continue

            confidence = self.calculate_confidence(artist, song, channel)
            logger.debug(f"Parsed '{title}' via {variant.value}: {artist!r} / {song!r}")
            return ParsedIdentity(artist, song, confidence, variant)

        if channel:
            artist = clean_channel_name(channel)
            if artist:
                return ParsedIdentity(
                    artist,
                    cleaned,
                    self.config.channel_fallback_confidence,
                    TitlePattern.CHANNEL_FALLBACK,
                )

        return ParsedIdentity(
            None, cleaned, self.config.last_resort_confidence, TitlePattern.LAST_RESORT
        )

    def parse_raw(self, raw: RawTitle) -> ParsedIdentity:
        return self.parse(raw.title, raw.channel_hint)

    def calculate_confidence(
        self, artist: Optional[str], song: Optional[str], channel_hint: Optional[str] = ""
    ) -> float:
        """Additive confidence: each corroborating signal adds independently."""
        cfg = self.config
        confidence = cfg.base_confidence

        if artist and song and artist.lower() != song.lower():
            confidence += cfg.distinct_fields_boost

        if artist and channel_hint:
            artist_lower = artist.lower()
            channel_lower = channel_hint.lower()
            if artist_lower in channel_lower or channel_lower in artist_lower:
                confidence += cfg.channel_overlap_boost

        if (
            artist
            and song
            and len(artist) > cfg.min_field_length
            and len(song) > cfg.min_field_length
        ):
            confidence += cfg.length_boost

        return min(confidence, 1.0)


_default_parser = TitleParser()


def parse_video_title(title: Optional[str], channel_hint: Optional[str] = "") -> ParsedIdentity:
    """Parse with the default configuration."""
    return _default_parser.parse(title, channel_hint)
