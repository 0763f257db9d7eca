"""Video matching orchestration: parse -> resolve -> infer -> score -> cache."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tqdm.asyncio import tqdm_asyncio

from .analysis.feature_profiles import FeatureVector
from .analysis.feels_scorer import calculate_feels_score, get_mood_label
from .analysis.genre_inferencer import GenreFeatureInferencer
from .analysis.string_matcher import combined_score
from .cache.backends import create_cache_backend
from .cache.result_cache import ResultCache
from .config import FeelsMeterConfig
from .metadata.musicbrainz import MetadataResolver, MusicBrainzClient, RecordingMetadata
from .title_parser import ParsedIdentity, TitleParser

logger = logging.getLogger(__name__)

MATCH_KEY_PREFIX = "match:"

REASON_UNPARSEABLE = "unparseable_title"
REASON_NOT_FOUND = "not_found"


@dataclass
class TrackAnalysis:
    """A resolved track with inferred features and its feels score."""

    track: RecordingMetadata
    features: FeatureVector
    feels_score: int
    mood: str
    color: str
    genre_confidence: float
    match_confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track": self.track.to_dict(),
            "features": self.features.to_dict(),
            "feels_score": self.feels_score,
            "mood": self.mood,
            "color": self.color,
            "genre_confidence": self.genre_confidence,
            "match_confidence": self.match_confidence,
        }


@dataclass
class MatchResult:
    """Outcome of matching one video; this is what gets cached."""

    video_id: str
    matched: bool
    parse_confidence: float = 0.0
    parsed: Dict[str, Any] = field(default_factory=dict)
    track: Optional[Dict[str, Any]] = None
    features: Optional[Dict[str, float]] = None
    feels_score: Optional[int] = None
    mood: Optional[str] = None
    color: Optional[str] = None
    genre_confidence: Optional[float] = None
    match_confidence: Optional[float] = None
    reason: Optional[str] = None
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchResult":
        return cls(
            video_id=str(data["video_id"]),
            matched=bool(data["matched"]),
            parse_confidence=float(data.get("parse_confidence") or 0.0),
            parsed=dict(data.get("parsed") or {}),
            track=data.get("track"),
            features=data.get("features"),
            feels_score=data.get("feels_score"),
            mood=data.get("mood"),
            color=data.get("color"),
            genre_confidence=data.get("genre_confidence"),
            match_confidence=data.get("match_confidence"),
            reason=data.get("reason"),
            cached=bool(data.get("cached", False)),
        )


class MatchOrchestrator:
    """Turns (video_id, title, channel) into a cached MatchResult."""

    def __init__(
        self,
        config: Optional[FeelsMeterConfig] = None,
        cache: Optional[ResultCache] = None,
        resolver: Optional[MetadataResolver] = None,
        parser: Optional[TitleParser] = None,
        inferencer: Optional[GenreFeatureInferencer] = None,
    ):
        self.config = config or FeelsMeterConfig()
        self.cache = cache or ResultCache(
            self.config.cache, create_cache_backend(self.config.cache)
        )
        self.resolver = resolver or MusicBrainzClient(
            self.config.musicbrainz,
            cache=self.cache,
            cache_ttl_seconds=self.config.cache.metadata_ttl_seconds,
        )
        self.parser = parser or TitleParser(self.config.parser)
        self.inferencer = inferencer or GenreFeatureInferencer(
            adjustments=self.config.inference.keyword_adjustments
        )

    async def initialize(self, start_sweeper: bool = True) -> None:
        await self.cache.initialize(start_sweeper=start_sweeper)

    async def close(self) -> None:
        close_resolver = getattr(self.resolver, "close", None)
        if close_resolver is not None:
            await close_resolver()
        await self.cache.close()

    async def __aenter__(self) -> "MatchOrchestrator":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def analyze_track(
        self, artist: Optional[str], song: Optional[str]
    ) -> Optional[TrackAnalysis]:
        """Resolve a track and score it; None when it cannot be resolved."""
        track = await self.resolver.search_recording(artist, song)
        if track is None:
            return None

        inferred = self.inferencer.infer(track.artist, track.title, track.genre_tags)
        score = calculate_feels_score(inferred.features)
        mood = get_mood_label(score)

        return TrackAnalysis(
            track=track,
            features=inferred.features,
            feels_score=score,
            mood=mood.value,
            color=mood.color,
            genre_confidence=inferred.confidence,
            match_confidence=round(
                combined_score({"artist": artist, "song": song}, track), 3
            ),
        )

    async def match_video(
        self, video_id: str, title: Optional[str], channel_hint: Optional[str] = ""
    ) -> MatchResult:
        cache_key = f"{MATCH_KEY_PREFIX}{video_id}"
        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                result = MatchResult.from_dict(cached)
                result.cached = True
                return result
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Ignoring malformed cached match for {video_id}")

        parsed = self.parser.parse(title, channel_hint)
        if parsed.is_empty:
            logger.debug(f"Could not parse title for {video_id}: {title!r}")
            return MatchResult(
                video_id=video_id,
                matched=False,
                parse_confidence=parsed.confidence,
                parsed=parsed.to_dict(),
                reason=REASON_UNPARSEABLE,
            )

        analysis = await self.analyze_track(parsed.artist, parsed.song)
        if analysis is None:
            result = MatchResult(
                video_id=video_id,
                matched=False,
                parse_confidence=parsed.confidence,
                parsed=parsed.to_dict(),
                reason=REASON_NOT_FOUND,
            )
            await self.cache.set(
                cache_key, result.to_dict(), self.config.cache.failed_match_ttl_seconds
            )
            return result

        result = self._matched_result(video_id, parsed, analysis)
        await self.cache.set(cache_key, result.to_dict(), self.config.cache.match_ttl_seconds)
        logger.info(
            f"Matched {video_id}: {analysis.track.artist} - {analysis.track.title} "
            f"(feels {analysis.feels_score}, {analysis.mood})"
        )
        return result

    async def match_videos(
        self,
        videos: Sequence[Tuple[str, str, str]],
        show_progress: bool = False,
    ) -> List[MatchResult]:
        """Match many videos concurrently; results keep the input order.

        ``videos`` holds ``(video_id, title, channel_hint)`` triples.
        """
        sem = asyncio.Semaphore(self.config.matching.max_concurrent_lookups)

        async def _worker(video: Tuple[str, str, str]) -> MatchResult:
            video_id, title, channel_hint = video
            async with sem:
                return await self.match_video(video_id, title, channel_hint)

        tasks = [_worker(v) for v in videos]
        if show_progress and len(tasks) > 1:
            desc = f"Matching videos (max {self.config.matching.max_concurrent_lookups} concurrent)"
            return list(await tqdm_asyncio.gather(*tasks, desc=desc, unit="video"))
        return list(await asyncio.gather(*tasks))

    def _matched_result(
        self, video_id: str, parsed: ParsedIdentity, analysis: TrackAnalysis
    ) -> MatchResult:
        return MatchResult(
            video_id=video_id,
            matched=True,
            parse_confidence=parsed.confidence,
            parsed=parsed.to_dict(),
            track=analysis.track.to_dict(),
            features=analysis.features.to_dict(),
            feels_score=analysis.feels_score,
            mood=analysis.mood,
            color=analysis.color,
            genre_confidence=analysis.genre_confidence,
            match_confidence=analysis.match_confidence,
        )
