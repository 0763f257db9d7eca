"""Durable cache backends used behind ResultCache.

Backends raise CacheBackendError on failure and MalformedCacheValue for
payloads that cannot be decoded; ResultCache decides how to degrade.
"""

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from ..config import CacheConfig
from ..exceptions import CacheBackendError, MalformedCacheValue

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheBackend(Protocol):
    """Interface shared by the durable backends."""

    name: str

    async def initialize(self) -> None: ...

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]: ...

    async def mset(self, items: Dict[str, Any], ttl_seconds: int) -> None: ...

    async def clear(self) -> None: ...

    async def count(self) -> int: ...

    async def close(self) -> None: ...


def _decode(key: str, raw: Optional[str]) -> Optional[Any]:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedCacheValue(key, str(e))


def _encode(value: Any) -> str:
    return json.dumps(value)


class SQLiteCacheBackend:
    """SQLite-based persistent cache with per-row expiry."""

    name = "sqlite"

    def __init__(self, db_path: str, table_name: str = "feels_cache"):
        self.db_path = db_path
        self.table_name = table_name

    async def initialize(self) -> None:
        """Initialize cache database schema."""
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.table_name} (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        expires_at REAL NOT NULL
                    )
                """
                )
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_expires "
                    f"ON {self.table_name}(expires_at)"
                )
        except (sqlite3.Error, OSError) as e:
            raise CacheBackendError(f"Cannot open SQLite cache {self.db_path}: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    f"SELECT value FROM {self.table_name} WHERE key = ? AND expires_at > ?",
                    (key, time.time()),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite get failed: {e}") from e
        return _decode(key, row[0]) if row else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        serialized = _encode(value)
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO {self.table_name} (key, value, expires_at) "
                    "VALUES (?, ?, ?)",
                    (key, serialized, time.time() + ttl_seconds),
                )
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite set failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(f"DELETE FROM {self.table_name} WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite delete failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    f"SELECT 1 FROM {self.table_name} WHERE key = ? AND expires_at > ?",
                    (key, time.time()),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite exists failed: {e}") from e
        return row is not None

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]:
        if not keys:
            return []
        placeholders = ",".join("?" for _ in keys)
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(
                    f"SELECT key, value FROM {self.table_name} "
                    f"WHERE key IN ({placeholders}) AND expires_at > ?",
                    (*keys, time.time()),
                ).fetchall()
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite mget failed: {e}") from e

        found = dict(rows)
        results: List[Optional[Any]] = []
        for key in keys:
            try:
                results.append(_decode(key, found.get(key)))
            except MalformedCacheValue as e:
                logger.warning(str(e))
                results.append(None)
        return results

    async def mset(self, items: Dict[str, Any], ttl_seconds: int) -> None:
        expires_at = time.time() + ttl_seconds
        rows = [(key, _encode(value), expires_at) for key, value in items.items()]
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executemany(
                    f"INSERT OR REPLACE INTO {self.table_name} (key, value, expires_at) "
                    "VALUES (?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite mset failed: {e}") from e

    async def clear(self) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(f"DELETE FROM {self.table_name}")
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite clear failed: {e}") from e

    async def count(self) -> int:
        """Number of rows that have not expired."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    f"SELECT COUNT(*) FROM {self.table_name} WHERE expires_at > ?",
                    (time.time(),),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite count failed: {e}") from e
        return int(row[0])

    async def clear_expired(self) -> int:
        """Delete expired rows and return how many were removed."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    f"DELETE FROM {self.table_name} WHERE expires_at <= ?", (time.time(),)
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise CacheBackendError(f"SQLite cleanup failed: {e}") from e

    async def close(self) -> None:
        """Connections are per-operation; nothing to release."""


class RedisCacheBackend:
    """Redis-based cache with key prefix namespacing."""

    name = "redis"

    def __init__(self, url: str, prefix: str = "feels:", client=None):
        self.url = url
        self.prefix = prefix
        self.client = client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def initialize(self) -> None:
        try:
            if self.client is None:
                self.client = redis_asyncio.from_url(self.url, decode_responses=True)
            await self.client.ping()
            logger.info(f"Redis cache connected: {self.url}")
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Cannot connect to Redis at {self.url}: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._key(key))
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis GET failed: {e}") from e
        return _decode(key, raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        serialized = _encode(value)
        try:
            await self.client.setex(self._key(key), ttl_seconds, serialized)
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis SETEX failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(self._key(key))
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis DEL failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.client.exists(self._key(key)))
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis EXISTS failed: {e}") from e

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]:
        if not keys:
            return []
        try:
            raw_values = await self.client.mget([self._key(k) for k in keys])
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis MGET failed: {e}") from e

        results: List[Optional[Any]] = []
        for key, raw in zip(keys, raw_values):
            try:
                results.append(_decode(key, raw))
            except MalformedCacheValue as e:
                logger.warning(str(e))
                results.append(None)
        return results

    async def mset(self, items: Dict[str, Any], ttl_seconds: int) -> None:
        try:
            pipeline = self.client.pipeline(transaction=True)
            for key, value in items.items():
                pipeline.setex(self._key(key), ttl_seconds, _encode(value))
            await pipeline.execute()
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis MSET failed: {e}") from e

    async def clear(self) -> None:
        """Delete every key under this backend's prefix."""
        try:
            keys = [key async for key in self.client.scan_iter(match=f"{self.prefix}*")]
            if keys:
                await self.client.delete(*keys)
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis clear failed: {e}") from e

    async def count(self) -> int:
        """Number of keys under this backend's prefix."""
        try:
            return len([key async for key in self.client.scan_iter(match=f"{self.prefix}*")])
        except (RedisError, OSError) as e:
            raise CacheBackendError(f"Redis count failed: {e}") from e

    async def close(self) -> None:
        if self.client is not None:
            try:
                await self.client.aclose()
            except (RedisError, OSError) as e:
                logger.warning(f"Error closing Redis client: {e}")


def create_cache_backend(config: CacheConfig) -> Optional[CacheBackend]:
    """Factory for the configured durable backend; ``None`` for memory-only."""
    if config.backend == "memory":
        return None
    if config.backend == "sqlite":
        return SQLiteCacheBackend(config.sqlite_path, config.sqlite_table)
    if config.backend == "redis":
        if not config.redis_url:
            raise ValueError("Redis URL required for redis backend")
        return RedisCacheBackend(config.redis_url, config.redis_prefix)
    raise ValueError(f"Unknown cache backend: {config.backend}")
