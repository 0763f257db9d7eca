"""Configuration models using simple dataclasses."""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Type
from urllib.parse import urlparse

import yaml

logger = logging.getLogger(__name__)

THIRTY_DAYS = 30 * 24 * 3600
ONE_DAY = 24 * 3600


@dataclass
class ParserConfig:
    """Title parser confidence tuning."""

    base_confidence: float = 0.5
    distinct_fields_boost: float = 0.2
    channel_overlap_boost: float = 0.2
    length_boost: float = 0.1
    min_field_length: int = 2
    channel_fallback_confidence: float = 0.4
    last_resort_confidence: float = 0.3


@dataclass
class KeywordAdjustmentConfig:
    """Additive nudges applied when title keywords fire.

    The deltas are empirical tuning, not derived constants.
    """

    intense_energy: float = 0.2
    intense_loudness: float = 2.0
    chill_energy: float = -0.2
    chill_tempo: float = -20.0
    happy_valence: float = 0.2
    sad_valence: float = -0.3
    sad_energy: float = -0.1
    acoustic_acousticness: float = 0.3

    # Floors used by the downward nudges
    chill_energy_floor: float = 0.1
    sad_valence_floor: float = 0.1
    sad_energy_floor: float = 0.2


@dataclass
class InferenceConfig:
    """Genre inference configuration."""

    keyword_adjustments: KeywordAdjustmentConfig = field(
        default_factory=KeywordAdjustmentConfig
    )


@dataclass
class CacheConfig:
    """Result cache configuration."""

    backend: str = "memory"  # memory, sqlite or redis
    default_ttl_seconds: int = THIRTY_DAYS
    sweep_interval_seconds: float = 60.0
    backend_retry_seconds: float = 30.0
    sqlite_path: str = "cache/feels_cache.db"
    sqlite_table: str = "feels_cache"
    redis_url: str = ""
    redis_prefix: str = "feels:"

    # TTLs for terminal match results
    match_ttl_seconds: int = THIRTY_DAYS
    failed_match_ttl_seconds: int = ONE_DAY
    metadata_ttl_seconds: int = THIRTY_DAYS


@dataclass
class MusicBrainzConfig:
    """MusicBrainz metadata lookup configuration."""

    enabled: bool = True
    base_url: str = "https://musicbrainz.org/ws/2"
    user_agent: str = "FeelsMeter/1.0 (https://github.com/feels-meter/feels-meter)"
    timeout_seconds: float = 10.0
    min_request_interval: float = 1.0
    max_retries: int = 3
    search_limit: int = 5


@dataclass
class MatchingConfig:
    """Orchestration settings for video matching."""

    max_concurrent_lookups: int = 5


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    file_path: str = "feels_meter.log"
    max_file_size_mb: int = 50
    backup_count: int = 5
    console_output: bool = True


@dataclass
class FeelsMeterConfig:
    """Main configuration model."""

    parser: ParserConfig = field(default_factory=ParserConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    musicbrainz: MusicBrainzConfig = field(default_factory=MusicBrainzConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _filter_fields(data: Dict[str, Any], cls: Type[Any]) -> Dict[str, Any]:
    """Return only keys present on the dataclass to avoid TypeErrors."""
    valid_fields = cls.__dataclass_fields__.keys()
    return {k: v for k, v in data.items() if k in valid_fields}


def validate_config(cfg: FeelsMeterConfig) -> None:
    """Validate configuration values with bounds checking."""
    # Parser confidences are all probabilities-like values
    for name in (
        "base_confidence",
        "distinct_fields_boost",
        "channel_overlap_boost",
        "length_boost",
        "channel_fallback_confidence",
        "last_resort_confidence",
    ):
        value = getattr(cfg.parser, name)
        if not 0 <= value <= 1:
            raise ValueError(f"parser.{name} must be between 0 and 1")
    if cfg.parser.min_field_length < 0:
        raise ValueError("parser.min_field_length cannot be negative")

    # Cache validation
    valid_backends = ["memory", "sqlite", "redis"]
    if cfg.cache.backend not in valid_backends:
        raise ValueError(f"cache.backend must be one of: {valid_backends}")
    if cfg.cache.default_ttl_seconds <= 0:
        raise ValueError("cache.default_ttl_seconds must be positive")
    if not (1 <= cfg.cache.sweep_interval_seconds <= 3600):
        raise ValueError("cache.sweep_interval_seconds must be between 1 and 3600")
    if cfg.cache.match_ttl_seconds <= 0 or cfg.cache.failed_match_ttl_seconds <= 0:
        raise ValueError("cache match TTLs must be positive")
    if cfg.cache.backend == "redis" and not cfg.cache.redis_url:
        raise ValueError("cache.redis_url is required for the redis backend")

    # MusicBrainz validation
    def validate_url(url: str, name: str):
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"{name} must be a valid HTTP/HTTPS URL")
        if not parsed.netloc:
            raise ValueError(f"{name} must have a valid hostname")

    validate_url(cfg.musicbrainz.base_url, "musicbrainz.base_url")
    if not (1 <= cfg.musicbrainz.timeout_seconds <= 120):
        raise ValueError("musicbrainz.timeout_seconds must be between 1 and 120")
    if cfg.musicbrainz.min_request_interval < 0:
        raise ValueError("musicbrainz.min_request_interval cannot be negative")
    if not (0 <= cfg.musicbrainz.max_retries <= 10):
        raise ValueError("musicbrainz.max_retries must be between 0 and 10")
    if not (1 <= cfg.musicbrainz.search_limit <= 100):
        raise ValueError("musicbrainz.search_limit must be between 1 and 100")

    if not (1 <= cfg.matching.max_concurrent_lookups <= 50):
        raise ValueError("matching.max_concurrent_lookups must be between 1 and 50")

    # Logging validation
    if not (1 <= cfg.logging.max_file_size_mb <= 1000):
        raise ValueError("max_file_size_mb must be between 1 and 1000 MB")
    if not (0 <= cfg.logging.backup_count <= 100):
        raise ValueError("backup_count must be between 0 and 100")
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if cfg.logging.level.upper() not in valid_levels:
        raise ValueError(f"logging.level must be one of: {valid_levels}")


def apply_env_overrides(cfg: FeelsMeterConfig) -> FeelsMeterConfig:
    """Apply FEELS_CACHE_TTL / FEELS_REDIS_URL environment overrides."""
    ttl = os.environ.get("FEELS_CACHE_TTL")
    if ttl:
        try:
            cfg.cache.default_ttl_seconds = int(ttl)
        except ValueError:
            logger.warning(f"Ignoring non-integer FEELS_CACHE_TTL: {ttl!r}")

    redis_url = os.environ.get("FEELS_REDIS_URL")
    if redis_url:
        cfg.cache.redis_url = redis_url
        cfg.cache.backend = "redis"

    return cfg


def load_config(config_path: Optional[str] = None) -> FeelsMeterConfig:
    """Load configuration from YAML file or return defaults."""
    if not (config_path and Path(config_path).exists()):
        cfg = apply_env_overrides(FeelsMeterConfig())
        validate_config(cfg)
        return cfg

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
    except (IOError, OSError) as e:
        raise ValueError(f"Cannot read configuration file {config_path}: {e}")

    if config_data is None:
        logger.warning(f"Configuration file {config_path} is empty, using defaults")
        config_data = {}
    elif not isinstance(config_data, dict):
        raise ValueError(
            f"Configuration file must contain a dictionary, got {type(config_data).__name__}"
        )

    try:
        inference_data = dict(config_data.get("inference") or {})
        keyword_data = inference_data.pop("keyword_adjustments", {}) or {}

        cfg = FeelsMeterConfig(
            parser=ParserConfig(**_filter_fields(config_data.get("parser") or {}, ParserConfig)),
            inference=InferenceConfig(
                keyword_adjustments=KeywordAdjustmentConfig(
                    **_filter_fields(keyword_data, KeywordAdjustmentConfig)
                )
            ),
            cache=CacheConfig(**_filter_fields(config_data.get("cache") or {}, CacheConfig)),
            musicbrainz=MusicBrainzConfig(
                **_filter_fields(config_data.get("musicbrainz") or {}, MusicBrainzConfig)
            ),
            matching=MatchingConfig(
                **_filter_fields(config_data.get("matching") or {}, MatchingConfig)
            ),
            logging=LoggingConfig(
                **_filter_fields(config_data.get("logging") or {}, LoggingConfig)
            ),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration values in {config_path}: {e}")

    cfg = apply_env_overrides(cfg)
    validate_config(cfg)
    return cfg


def save_config_template(output_path: str = "config_template.yaml") -> None:
    """Save a template configuration file."""
    config_dict = asdict(FeelsMeterConfig())

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(config_dict, f, default_flow_style=False, indent=2)

    logger.info(f"Configuration template saved to: {output_path}")
