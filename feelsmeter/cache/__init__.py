"""Result cache with durable backends and in-memory fallback."""

from .backends import RedisCacheBackend, SQLiteCacheBackend, create_cache_backend
from .result_cache import ResultCache

__all__ = ["ResultCache", "RedisCacheBackend", "SQLiteCacheBackend", "create_cache_backend"]
