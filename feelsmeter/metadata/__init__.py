"""Track metadata providers."""

from .musicbrainz import MetadataResolver, MusicBrainzClient, RecordingMetadata

__all__ = ["MetadataResolver", "MusicBrainzClient", "RecordingMetadata"]
