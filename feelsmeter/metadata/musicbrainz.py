"""MusicBrainz metadata lookup.

API docs: https://musicbrainz.org/doc/MusicBrainz_API
MusicBrainz allows one request per second per client; the throttle below
enforces that on our side.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..analysis.string_matcher import best_candidate
from ..config import MusicBrainzConfig
from ..exceptions import MetadataLookupError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class RecordingMetadata:
    """Fields consumed from a resolved recording."""

    id: str
    title: str
    artist: str
    genre_tags: List[str] = field(default_factory=list)
    length_ms: Optional[int] = None
    score: Optional[int] = None
    disambiguation: str = ""

    @property
    def song(self) -> str:
        return self.title

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordingMetadata":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            artist=str(data.get("artist") or ""),
            genre_tags=list(data.get("genre_tags") or []),
            length_ms=data.get("length_ms"),
            score=data.get("score"),
            disambiguation=data.get("disambiguation") or "",
        )


class MetadataResolver(Protocol):
    """Anything that can resolve an (artist, song) pair to a recording."""

    async def search_recording(
        self, artist: Optional[str], song: Optional[str]
    ) -> Optional[RecordingMetadata]: ...


class _RetryableStatus(Exception):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"MusicBrainz returned HTTP {status_code}")


class RequestThrottle:
    """Minimum spacing between outgoing requests."""

    def __init__(self, min_interval: float = 1.0):
        self.min_interval = min_interval
        self.last_request_time = 0.0
        self.lock = asyncio.Lock()

    async def wait_for_request(self) -> None:
        async with self.lock:
            elapsed = time.monotonic() - self.last_request_time
            if elapsed < self.min_interval:
                wait_time = self.min_interval - elapsed
                logger.debug(f"Throttling MusicBrainz request for {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
            self.last_request_time = time.monotonic()


def _tag_names(entries: Optional[List[Dict[str, Any]]]) -> List[str]:
    return [str(entry["name"]).lower() for entry in entries or [] if entry.get("name")]


def _credited_artist(recording: Dict[str, Any], fallback: str = "") -> str:
    credits = recording.get("artist-credit") or []
    if credits and isinstance(credits[0], dict):
        return credits[0].get("name") or credits[0].get("artist", {}).get("name") or fallback
    return fallback


class MusicBrainzClient:
    """Async MusicBrainz client with throttling, retries and result caching."""

    def __init__(
        self,
        config: Optional[MusicBrainzConfig] = None,
        cache=None,
        http_client: Optional[httpx.AsyncClient] = None,
        cache_ttl_seconds: int = 30 * 24 * 3600,
        retry_wait=None,
    ):
        self.config = config or MusicBrainzConfig()
        self.cache = cache
        self.cache_ttl = cache_ttl_seconds
        self.throttle = RequestThrottle(self.config.min_request_interval)
        self._client = http_client
        self._owns_client = http_client is None
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

        self.stats = {"requests": 0, "cache_hits": 0, "failures": 0}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request_json(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET ``path`` with throttling and retries on transient failures."""
        client = await self._get_client()
        url = f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
        params = {**params, "fmt": "json"}

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=self._retry_wait,
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            reraise=True,
        ):
            with attempt:
                await self.throttle.wait_for_request()
                self.stats["requests"] += 1
                response = await client.get(
                    url, params=params, headers={"User-Agent": self.config.user_agent}
                )
                if response.status_code in RETRYABLE_STATUS:
                    logger.warning(
                        f"MusicBrainz HTTP {response.status_code} for {path} "
                        f"(attempt {attempt.retry_state.attempt_number})"
                    )
                    raise _RetryableStatus(response.status_code)
                response.raise_for_status()
                try:
                    return response.json()
                except ValueError as e:
                    raise MetadataLookupError(f"Invalid JSON from MusicBrainz: {e}") from e

        raise MetadataLookupError(f"No response from MusicBrainz for {path}")

    async def _cached(self, key: str) -> Optional[Dict[str, Any]]:
        if self.cache is None:
            return None
        cached = await self.cache.get(key)
        if isinstance(cached, dict):
            self.stats["cache_hits"] += 1
            return cached
        return None

    async def _store(self, key: str, value: Dict[str, Any]) -> None:
        if self.cache is not None:
            await self.cache.set(key, value, self.cache_ttl)

    async def _safe_request(self, path: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return await self._request_json(path, params)
        except (
            httpx.HTTPError,
            _RetryableStatus,
            RetryError,
            MetadataLookupError,
        ) as e:
            self.stats["failures"] += 1
            logger.error(f"MusicBrainz request to {path} failed: {e}")
            return None

    async def search_recording(
        self, artist: Optional[str], song: Optional[str]
    ) -> Optional[RecordingMetadata]:
        """Closest recording for an artist/song pair, or None.

        Candidates are ranked by fuzzy similarity to the query; MusicBrainz's
        own ordering breaks ties.
        """
        if not artist or not song or not self.config.enabled:
            return None

        cache_key = f"musicbrainz:recording:{artist.lower()}:{song.lower()}"
        cached = await self._cached(cache_key)
        if cached:
            try:
                return RecordingMetadata.from_dict(cached)
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Discarding malformed cached recording for {cache_key}")

        candidates = await self.search_recordings(artist, song)
        picked = best_candidate({"artist": artist, "song": song}, candidates)
        if picked is None:
            logger.info(f"No MusicBrainz match for: {artist} - {song}")
            return None

        result, similarity = picked
        logger.debug(f"MusicBrainz picked {result.artist} - {result.title} ({similarity:.2f})")
        await self._store(cache_key, result.to_dict())
        return result

    async def search_recordings(
        self, artist: Optional[str], song: Optional[str], limit: Optional[int] = None
    ) -> List[RecordingMetadata]:
        """All candidate recordings for an artist/song pair, uncached."""
        if not artist or not song or not self.config.enabled:
            return []

        query = f'recording:"{song}" AND artist:"{artist}"'
        data = await self._safe_request(
            "recording", {"query": query, "limit": limit or self.config.search_limit}
        )
        if not data:
            return []

        return [
            RecordingMetadata(
                id=recording.get("id", ""),
                title=recording.get("title", ""),
                artist=_credited_artist(recording, artist),
                genre_tags=_tag_names(recording.get("tags")),
                length_ms=recording.get("length"),
                score=recording.get("score"),
                disambiguation=recording.get("disambiguation") or "",
            )
            for recording in data.get("recordings") or []
            if recording.get("id")
        ]

    async def get_recording(self, recording_id: str) -> Optional[RecordingMetadata]:
        """Detailed recording lookup by MusicBrainz id."""
        if not recording_id or not self.config.enabled:
            return None

        cache_key = f"musicbrainz:recording:id:{recording_id}"
        cached = await self._cached(cache_key)
        if cached:
            try:
                return RecordingMetadata.from_dict(cached)
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Discarding malformed cached recording for {cache_key}")

        data = await self._safe_request(
            f"recording/{recording_id}", {"inc": "artist-credits+tags+genres+ratings"}
        )
        if not data:
            return None

        result = RecordingMetadata(
            id=data.get("id", recording_id),
            title=data.get("title", ""),
            artist=_credited_artist(data),
            genre_tags=_tag_names(data.get("genres")) or _tag_names(data.get("tags")),
            length_ms=data.get("length"),
        )
        await self._store(cache_key, result.to_dict())
        return result

    async def search_artist(self, artist_name: Optional[str]) -> Optional[Dict[str, Any]]:
        """Artist id, name, type and genre tags, or None."""
        if not artist_name or not self.config.enabled:
            return None

        cache_key = f"musicbrainz:artist:{artist_name.lower()}"
        cached = await self._cached(cache_key)
        if cached:
            return cached

        data = await self._safe_request(
            "artist", {"query": f'artist:"{artist_name}"', "limit": 1}
        )
        artists = (data or {}).get("artists") or []
        if not artists:
            return None

        artist = artists[0]
        result = {
            "id": artist.get("id"),
            "name": artist.get("name"),
            "type": artist.get("type"),
            "genre_tags": _tag_names(artist.get("tags")),
            "disambiguation": artist.get("disambiguation") or "",
        }
        await self._store(cache_key, result)
        return result
