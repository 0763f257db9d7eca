"""Exception types raised inside components and caught at their boundaries."""


class FeelsMeterError(Exception):
    """Base class for feels meter errors."""


class CacheBackendError(FeelsMeterError):
    """A durable cache backend could not complete an operation."""


class MalformedCacheValue(FeelsMeterError):
    """A stored cache payload could not be deserialized."""

    def __init__(self, key: str, reason: str = ""):
        self.key = key
        super().__init__(f"Malformed cache value for {key!r}: {reason}")


class MetadataLookupError(FeelsMeterError):
    """The metadata service returned an unusable response."""
