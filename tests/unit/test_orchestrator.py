"""Unit tests for orchestrator.py."""

import asyncio
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feelsmeter.cache.result_cache import ResultCache
from feelsmeter.config import CacheConfig, FeelsMeterConfig, MatchingConfig
from feelsmeter.metadata.musicbrainz import RecordingMetadata
from feelsmeter.orchestrator import (
    REASON_NOT_FOUND,
    REASON_UNPARSEABLE,
    MatchOrchestrator,
    MatchResult,
)


class FakeResolver:
    """In-memory resolver keyed by lowercased (artist, song)."""

    def __init__(self, tracks: Dict[Tuple[str, str], RecordingMetadata], delay: float = 0.0):
        self.tracks = tracks
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search_recording(
        self, artist: Optional[str], song: Optional[str]
    ) -> Optional[RecordingMetadata]:
        self.calls.append((artist, song))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.tracks.get(((artist or "").lower(), (song or "").lower()))
        finally:
            self.in_flight -= 1


METALLICA = RecordingMetadata(
    id="mb-1",
    title="Master of Puppets",
    artist="Metallica",
    genre_tags=["thrash metal", "heavy metal"],
)
NORAH = RecordingMetadata(
    id="mb-2",
    title="Don't Know Why",
    artist="Norah Jones",
    genre_tags=["jazz", "acoustic"],
)


@pytest.fixture
def resolver():
    return FakeResolver(
        {
            ("metallica", "master of puppets"): METALLICA,
            ("norah jones", "don't know why"): NORAH,
        }
    )


@pytest.fixture
def cache():
    return ResultCache(CacheConfig())


@pytest.fixture
def orchestrator(cache, resolver):
    return MatchOrchestrator(FeelsMeterConfig(), cache=cache, resolver=resolver)


class TestAnalyzeTrack:
    """Test cases for analyze_track."""

    @pytest.mark.asyncio
    async def test_metal_track_is_intense(self, orchestrator):
        analysis = await orchestrator.analyze_track("metallica", "master of puppets")

        assert analysis.track.id == "mb-1"
        assert analysis.feels_score >= 80
        assert analysis.mood == "Intense"
        assert analysis.color == "#E74C3C"
        assert analysis.genre_confidence == 0.7
        assert analysis.match_confidence == 1.0

    @pytest.mark.asyncio
    async def test_jazz_track_is_calmer(self, orchestrator):
        metal = await orchestrator.analyze_track("metallica", "master of puppets")
        jazz = await orchestrator.analyze_track("norah jones", "don't know why")

        assert jazz.feels_score < metal.feels_score

    @pytest.mark.asyncio
    async def test_unknown_track(self, orchestrator):
        assert await orchestrator.analyze_track("nobody", "nothing") is None

    @pytest.mark.asyncio
    async def test_to_dict(self, orchestrator):
        analysis = await orchestrator.analyze_track("metallica", "master of puppets")

        data = analysis.to_dict()

        assert data["track"]["id"] == "mb-1"
        assert set(data["features"]) == {
            "energy",
            "tempo",
            "danceability",
            "loudness",
            "valence",
            "acousticness",
        }


class TestMatchVideo:
    """Test cases for match_video."""

    @pytest.mark.asyncio
    async def test_successful_match_is_cached(self, orchestrator, cache):
        result = await orchestrator.match_video(
            "vid1", "Metallica - Master of Puppets (Official Video)"
        )

        assert result.matched is True
        assert result.cached is False
        assert result.parsed["artist"] == "metallica"
        assert result.track["title"] == "Master of Puppets"
        assert result.feels_score >= 80
        assert await cache.get("match:vid1") == result.to_dict()

    @pytest.mark.asyncio
    async def test_cache_hit_skips_resolver(self, orchestrator, resolver):
        first = await orchestrator.match_video("vid1", "Metallica - Master of Puppets")
        second = await orchestrator.match_video("vid1", "Metallica - Master of Puppets")

        assert second.cached is True
        assert second.feels_score == first.feels_score
        assert len(resolver.calls) == 1

    @pytest.mark.asyncio
    async def test_unresolved_match_uses_short_ttl(self, resolver):
        now = [0.0]
        cache = ResultCache(CacheConfig(), clock=lambda: now[0])
        orchestrator = MatchOrchestrator(FeelsMeterConfig(), cache=cache, resolver=resolver)

        result = await orchestrator.match_video("vid2", "Nobody - Nothing")

        assert result.matched is False
        assert result.reason == REASON_NOT_FOUND
        assert await cache.get("match:vid2") is not None

        now[0] = CacheConfig().failed_match_ttl_seconds + 1
        assert await cache.get("match:vid2") is None

    @pytest.mark.asyncio
    async def test_successful_match_uses_long_ttl(self, resolver):
        now = [0.0]
        cache = ResultCache(CacheConfig(), clock=lambda: now[0])
        orchestrator = MatchOrchestrator(FeelsMeterConfig(), cache=cache, resolver=resolver)

        await orchestrator.match_video("vid1", "Metallica - Master of Puppets")

        now[0] = CacheConfig().failed_match_ttl_seconds + 1
        assert await cache.get("match:vid1") is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title", [None, "", "(Official Video)"])
    async def test_unparseable_title_is_not_cached(self, orchestrator, cache, resolver, title):
        result = await orchestrator.match_video("vid3", title)

        assert result.matched is False
        assert result.reason == REASON_UNPARSEABLE
        assert result.parse_confidence == 0.0
        assert await cache.get("match:vid3") is None
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_malformed_cached_match_is_a_miss(self, orchestrator, cache, resolver):
        await cache.set("match:vid1", {"unexpected": "shape"})

        result = await orchestrator.match_video("vid1", "Metallica - Master of Puppets")

        assert result.matched is True
        assert result.cached is False
        assert len(resolver.calls) == 1

    @pytest.mark.asyncio
    async def test_channel_hint_is_used(self, orchestrator, resolver):
        result = await orchestrator.match_video("vid4", "Master of Puppets", "MetallicaVEVO")

        assert resolver.calls == [("Metallica", "master of puppets")]
        assert result.matched is True


class TestMatchVideos:
    """Test cases for match_videos fan-out."""

    @pytest.mark.asyncio
    async def test_order_is_preserved(self, orchestrator):
        videos = [
            ("a", "Norah Jones - Don't Know Why", ""),
            ("b", "Nobody - Nothing", ""),
            ("c", "Metallica - Master of Puppets", ""),
        ]

        results = await orchestrator.match_videos(videos)

        assert [r.video_id for r in results] == ["a", "b", "c"]
        assert [r.matched for r in results] == [True, False, True]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, cache):
        resolver = FakeResolver({}, delay=0.01)
        config = FeelsMeterConfig(matching=MatchingConfig(max_concurrent_lookups=2))
        orchestrator = MatchOrchestrator(config, cache=cache, resolver=resolver)
        videos = [(f"v{i}", f"Artist {i} - Song {i}", "") for i in range(8)]

        results = await orchestrator.match_videos(videos)

        assert len(results) == 8
        assert resolver.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, orchestrator):
        assert await orchestrator.match_videos([]) == []

    @pytest.mark.asyncio
    async def test_progress_bar_path(self, orchestrator):
        videos = [
            ("a", "Norah Jones - Don't Know Why", ""),
            ("c", "Metallica - Master of Puppets", ""),
        ]

        results = await orchestrator.match_videos(videos, show_progress=True)

        assert [r.video_id for r in results] == ["a", "c"]


class TestMatchResult:
    def test_from_dict_round_trip(self):
        result = MatchResult(video_id="x", matched=True, feels_score=0, mood="Very Chill")

        assert MatchResult.from_dict(result.to_dict()) == result

    def test_from_dict_requires_core_fields(self):
        with pytest.raises(KeyError):
            MatchResult.from_dict({"video_id": "x"})


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_async_context_manager(self, cache, resolver):
        async with MatchOrchestrator(FeelsMeterConfig(), cache=cache, resolver=resolver) as orch:
            assert cache._sweeper is not None
            assert await orch.analyze_track("metallica", "master of puppets") is not None

        assert cache._sweeper is None
