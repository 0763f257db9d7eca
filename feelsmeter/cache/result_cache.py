"""Key/value result cache with per-entry TTL.

A durable backend (SQLite or Redis) is tried first. When it is missing or an
operation fails, the cache degrades to an in-process map with per-key expiry
timestamps. Backend failures are logged and never reach the caller.

Keys written or deleted while the backend is down are remembered and pushed
to the backend before it serves reads again, so a recovered backend never
hands back values the caller already replaced.
"""

import asyncio
import json
import logging
import math
import time
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Set

from ..config import CacheConfig
from ..exceptions import CacheBackendError, MalformedCacheValue
from .backends import CacheBackend

logger = logging.getLogger(__name__)

MEMORY_MODE = "memory"


class _KeyLock:
    """A per-key lock plus the number of tasks holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class ResultCache:
    """Async TTL cache shared by the matching pipeline.

    The in-process fallback keeps two parallel maps (serialized value and
    expiry deadline). Mutations are serialized per key; reads take no lock.
    Map-wide changes (``clear`` and the sweep) run without awaiting, so they
    never interleave with a per-key update.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        backend: Optional[CacheBackend] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig()
        self.default_ttl = self.config.default_ttl_seconds
        self.backend = backend
        self._clock = clock

        self._values: Dict[str, str] = {}
        self._expiry: Dict[str, float] = {}
        self._key_locks: Dict[str, _KeyLock] = {}

        self._backend_ready = False
        self._backend_connected = False
        self._backend_retry_at = 0.0
        self._recovery_lock: Optional[asyncio.Lock] = None
        # Writes the backend missed while it was down
        self._unsynced_keys: Set[str] = set()
        self._unsynced_clear = False
        self._sweeper: Optional[asyncio.Task] = None

        self.stats_counters = {
            "hits": 0,
            "misses": 0,
            "backend_errors": 0,
            "malformed": 0,
            "swept": 0,
            "replayed": 0,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, start_sweeper: bool = True) -> None:
        """Connect the durable backend if configured and start the sweeper."""
        if self.backend is not None:
            try:
                await self.backend.initialize()
                self._backend_ready = True
                self._backend_connected = True
                logger.info(f"Cache: using {self.backend.name} backend")
            except CacheBackendError as e:
                logger.warning(f"Cache: {e}; falling back to in-memory cache")
                self._mark_backend_failed()
        else:
            logger.info("Cache: using in-memory cache (no durable backend configured)")

        if start_sweeper:
            self.start_sweeper()

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        if self.backend is not None:
            await self.backend.close()
        self._backend_ready = False

    @property
    def mode(self) -> str:
        """Which store currently serves requests."""
        if self.backend is not None and self._backend_ready:
            return self.backend.name
        return MEMORY_MODE


    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[Any]:
        value = None
        if await self._backend_available():
            try:
                value = await self.backend.get(key)
            except MalformedCacheValue as e:
                self.stats_counters["malformed"] += 1
                logger.warning(str(e))
            except CacheBackendError as e:
                self._handle_backend_error("get", e)

        if value is None:
            value = self._get_from_memory(key)

        self.stats_counters["hits" if value is not None else "misses"] += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        ttl = self._resolve_ttl(ttl_seconds)
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Refusing to cache non-serializable value for {key!r}: {e}")
            return False

        async with self._key_lock(key):
            synced = False
            if await self._backend_available():
                try:
                    await self.backend.set(key, value, ttl)
                    synced = True
                except CacheBackendError as e:
                    self._handle_backend_error("set", e)
            self._set_in_memory(key, serialized, ttl)
            self._track_sync(key, synced)
        return True

    async def delete(self, key: str) -> None:
        async with self._key_lock(key):
            synced = False
            if await self._backend_available():
                try:
                    await self.backend.delete(key)
                    synced = True
                except CacheBackendError as e:
                    self._handle_backend_error("delete", e)
            self._remove_from_memory(key)
            self._track_sync(key, synced)

    # Short alias alongside get/set
    del_ = delete

    async def exists(self, key: str) -> bool:
        if await self._backend_available():
            try:
                if await self.backend.exists(key):
                    return True
            except CacheBackendError as e:
                self._handle_backend_error("exists", e)
        return self._get_from_memory(key) is not None

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]:
        keys = list(keys or [])
        if not keys:
            return []

        values: List[Optional[Any]] = [None] * len(keys)
        if await self._backend_available():
            try:
                values = list(await self.backend.mget(keys))
            except CacheBackendError as e:
                self._handle_backend_error("mget", e)

        return [
            value if value is not None else self._get_from_memory(key)
            for key, value in zip(keys, values)
        ]

    async def mset(self, items: Dict[str, Any], ttl_seconds: Optional[int] = None) -> bool:
        if not items:
            return True

        ttl = self._resolve_ttl(ttl_seconds)
        serialized = {}
        for key, value in items.items():
            try:
                serialized[key] = json.dumps(value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Refusing to cache non-serializable value for {key!r}: {e}")
        if not serialized:
            return False

        async with AsyncExitStack() as stack:
            # Sorted acquisition keeps overlapping msets from deadlocking
            for key in sorted(serialized):
                await stack.enter_async_context(self._key_lock(key))

            synced = False
            if await self._backend_available():
                try:
                    await self.backend.mset({key: items[key] for key in serialized}, ttl)
                    synced = True
                except CacheBackendError as e:
                    self._handle_backend_error("mset", e)
            for key, payload in serialized.items():
                self._set_in_memory(key, payload, ttl)
                self._track_sync(key, synced)
        return len(serialized) == len(items)

    async def clear(self) -> None:
        synced = False
        if await self._backend_available():
            try:
                await self.backend.clear()
                synced = True
            except CacheBackendError as e:
                self._handle_backend_error("clear", e)
        self._values.clear()
        self._expiry.clear()
        self._unsynced_keys.clear()
        if not synced and self._can_recover():
            self._unsynced_clear = True

    def stats(self) -> Dict[str, Any]:
        keys = self._live_keys()
        return {"mode": self.mode, "size": len(keys), "keys": keys}

    def get_comprehensive_stats(self) -> Dict[str, Any]:
        """Stats plus hit/miss counters."""
        lookups = self.stats_counters["hits"] + self.stats_counters["misses"]
        return {
            **self.stats(),
            **self.stats_counters,
            "hit_rate": self.stats_counters["hits"] / lookups if lookups else 0.0,
            "default_ttl_seconds": self.default_ttl,
            "unsynced_keys": len(self._unsynced_keys),
        }

    async def backend_size(self) -> Optional[int]:
        """Live entries in the durable backend; None in memory mode."""
        if not await self._backend_available():
            return None
        try:
            return await self.backend.count()
        except CacheBackendError as e:
            self._handle_backend_error("count", e)
            return None

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Drop expired in-memory entries; iterates a snapshot of the keys."""
        now = self._clock()
        removed = 0
        for key, expires_at in list(self._expiry.items()):
            if expires_at <= now and self._expiry.get(key) == expires_at:
                self._remove_from_memory(key)
                removed += 1

        self.stats_counters["swept"] += removed
        if removed:
            logger.debug(f"Cache sweep removed {removed} expired entries")
        return removed

    async def _sweep_loop(self) -> None:
        interval = self.config.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.sweep_expired()
            clear_expired = getattr(self.backend, "clear_expired", None)
            if clear_expired is not None and await self._backend_available():
                try:
                    await clear_expired()
                except CacheBackendError as e:
                    self._handle_backend_error("sweep", e)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key``; the entry lives while anyone uses it."""
        entry = self._key_locks.get(key)
        if entry is None:
            entry = self._key_locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._key_locks.get(key) is entry:
                del self._key_locks[key]

    def _resolve_ttl(self, ttl_seconds: Optional[int]) -> int:
        if ttl_seconds is None or ttl_seconds <= 0:
            return self.default_ttl
        return ttl_seconds

    def _can_recover(self) -> bool:
        """Whether a failed backend will be retried later."""
        return self.backend is not None and self._backend_connected

    def _retry_due(self) -> bool:
        return (
            self._can_recover()
            and bool(self._backend_retry_at)
            and self._clock() >= self._backend_retry_at
        )

    async def _backend_available(self) -> bool:
        """True when the backend should serve this operation.

        A failed backend is retried once the back-off window has passed, and
        only after the writes it missed have been replayed into it.
        """
        if self.backend is None:
            return False
        if self._backend_ready:
            return True
        if not self._retry_due():
            return False

        if self._recovery_lock is None:
            self._recovery_lock = asyncio.Lock()
        async with self._recovery_lock:
            if self._backend_ready:
                return True
            if not self._retry_due():
                return False
            logger.info(f"Cache: retrying {self.backend.name} backend")
            try:
                await self._replay_unsynced()
            except CacheBackendError as e:
                self._handle_backend_error("recovery", e)
                return False
            self._backend_ready = True
            self._backend_retry_at = 0.0
            return True

    async def _replay_unsynced(self) -> None:
        """Push writes made during an outage to the backend, oldest state first."""
        if self._unsynced_clear:
            await self.backend.clear()
            self._unsynced_clear = False

        for key in list(self._unsynced_keys):
            payload = self._values.get(key)
            expires_at = self._expiry.get(key)
            remaining = expires_at - self._clock() if expires_at is not None else 0
            try:
                value = json.loads(payload) if payload is not None else None
            except ValueError:
                payload = None

            if payload is None or remaining <= 0:
                await self.backend.delete(key)
            else:
                await self.backend.set(key, value, max(1, math.ceil(remaining)))
            self._unsynced_keys.discard(key)
            self.stats_counters["replayed"] += 1

        logger.info(f"Cache: {self.backend.name} backend back in sync")

    def _track_sync(self, key: str, synced: bool) -> None:
        if synced:
            self._unsynced_keys.discard(key)
        elif self._can_recover():
            self._unsynced_keys.add(key)

    def _mark_backend_failed(self) -> None:
        self._backend_ready = False
        self._backend_retry_at = self._clock() + self.config.backend_retry_seconds

    def _handle_backend_error(self, operation: str, error: Exception) -> None:
        self.stats_counters["backend_errors"] += 1
        logger.warning(
            f"Cache backend {operation} failed, using in-memory cache: {error}"
        )
        self._mark_backend_failed()

    def _get_from_memory(self, key: str) -> Optional[Any]:
        expires_at = self._expiry.get(key)
        if expires_at is None:
            return None
        if self._clock() >= expires_at:
            self._remove_from_memory(key)
            return None

        payload = self._values.get(key)
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except ValueError:
            self.stats_counters["malformed"] += 1
            logger.warning(f"Malformed in-memory cache value for {key!r}; treating as miss")
            self._remove_from_memory(key)
            return None

    def _set_in_memory(self, key: str, payload: str, ttl: int) -> None:
        # Both maps are updated without an intervening await
        self._values[key] = payload
        self._expiry[key] = self._clock() + ttl

    def _remove_from_memory(self, key: str) -> None:
        self._values.pop(key, None)
        self._expiry.pop(key, None)

    def _live_keys(self) -> List[str]:
        now = self._clock()
        return [key for key, expires_at in list(self._expiry.items()) if expires_at > now]

