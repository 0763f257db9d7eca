"""Command-line interface for the feels meter."""

import asyncio
import json
import logging
import sys
from typing import List, Optional, Tuple

import click

from feelsmeter import __version__
from feelsmeter.analysis.feature_profiles import FeatureVector
from feelsmeter.analysis.feels_scorer import (
    calculate_feels_score,
    get_mood_label,
    score_distribution,
)
from feelsmeter.analysis.genre_inferencer import GenreFeatureInferencer
from feelsmeter.cache.backends import create_cache_backend
from feelsmeter.cache.result_cache import ResultCache
from feelsmeter.config import FeelsMeterConfig, load_config, save_config_template
from feelsmeter.orchestrator import MatchOrchestrator, MatchResult
from feelsmeter.title_parser import TitleParser
from feelsmeter.utils import extract_video_id, setup_logging


def _load(config_path: Optional[str]) -> FeelsMeterConfig:
    try:
        return load_config(config_path)
    except ValueError as e:
        raise click.ClickException(str(e))


def _setup_logging(cfg: FeelsMeterConfig, log_level: Optional[str]) -> None:
    level_name = (log_level or cfg.logging.level).upper()
    setup_logging(
        level=getattr(logging, level_name, logging.INFO),
        log_file=cfg.logging.file_path or None,
        max_bytes=cfg.logging.max_file_size_mb * 1024 * 1024,
        backup_count=cfg.logging.backup_count,
        console_output=cfg.logging.console_output,
    )


def _print_result(result: MatchResult) -> None:
    print(f"Video: {result.video_id}")
    parsed = result.parsed or {}
    print(
        f"Parsed: {parsed.get('artist') or '-'} / {parsed.get('song') or '-'} "
        f"(confidence {result.parse_confidence:.2f})"
    )
    if not result.matched:
        print(f"No match ({result.reason})")
        return

    track = result.track or {}
    print(f"Track: {track.get('artist')} - {track.get('title')} [{track.get('id')}]")
    print(f"Genres: {', '.join(track.get('genre_tags') or []) or '-'}")
    print(f"Feels score: {result.feels_score} ({result.mood}, {result.color})")
    print(
        f"Genre confidence: {result.genre_confidence:.2f}  "
        f"Match confidence: {result.match_confidence:.2f}"
    )
    if result.cached:
        print("(from cache)")


def _read_video_file(path: str) -> List[Tuple[str, str, str]]:
    """Parse ``video_id<TAB>title[<TAB>channel]`` lines; ``#`` starts a comment."""
    videos = []
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            line = line.rstrip("\n")
            if not line.strip() or line.startswith("#"):
                continue
            parts = line.split("\t")
            if len(parts) < 2:
                logging.warning(f"Skipping line {line_number}: expected id<TAB>title")
                continue
            video_id = extract_video_id(parts[0]) or parts[0].strip()
            channel = parts[2].strip() if len(parts) > 2 else ""
            videos.append((video_id, parts[1].strip(), channel))
    return videos


async def _match_async(
    orchestrator: MatchOrchestrator, videos: List[Tuple[str, str, str]], show_progress: bool
) -> List[MatchResult]:
    await orchestrator.initialize(start_sweeper=False)
    try:
        return await orchestrator.match_videos(videos, show_progress=show_progress)
    finally:
        await orchestrator.close()


async def _cache_stats_async(cfg: FeelsMeterConfig) -> dict:
    cache = ResultCache(cfg.cache, create_cache_backend(cfg.cache))
    await cache.initialize(start_sweeper=False)
    try:
        stats = cache.get_comprehensive_stats()
        stats["backend_size"] = await cache.backend_size()
        return stats
    finally:
        await cache.close()


@click.group()
@click.version_option(__version__)
def cli():
    """Feels Meter - Score how intense a music video feels from its title."""
    pass


@cli.command()
@click.argument("title")
@click.option("--channel", default="", help="Uploader channel name used as a hint")
def parse(title, channel):
    """Parse a video title into artist and song."""
    parsed = TitleParser().parse(title, channel)
    print(f"Artist: {parsed.artist or '-'}")
    print(f"Song: {parsed.song or '-'}")
    print(f"Confidence: {parsed.confidence:.2f}")
    print(f"Pattern: {parsed.pattern.value}")


@cli.command()
@click.option("--energy", type=float, default=0.5, show_default=True)
@click.option("--tempo", type=float, default=120.0, show_default=True, help="BPM")
@click.option("--danceability", type=float, default=0.5, show_default=True)
@click.option("--loudness", type=float, default=-10.0, show_default=True, help="dB")
@click.option("--valence", type=float, default=0.5, show_default=True)
@click.option("--acousticness", type=float, default=0.5, show_default=True)
def score(energy, tempo, danceability, loudness, valence, acousticness):
    """Score a feature vector."""
    features = FeatureVector(energy, tempo, danceability, loudness, valence, acousticness)
    value = calculate_feels_score(features)
    mood = get_mood_label(value)
    print(f"Feels score: {value}")
    print(f"Mood: {mood.value}")
    print(f"Color: {mood.color}")


@cli.command()
@click.option("--genre", "-g", "genres", multiple=True, help="Genre tag (repeatable)")
@click.option("--artist", "-a", default="", help="Artist name")
@click.option("--song", "-s", default="", help="Song title")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
def infer(genres, artist, song, config):
    """Infer audio features from genre tags and names."""
    cfg = _load(config)
    inferencer = GenreFeatureInferencer(adjustments=cfg.inference.keyword_adjustments)
    inferred = inferencer.infer(artist, song, list(genres))
    value = calculate_feels_score(inferred.features)

    print("Features:")
    for name, feature in inferred.features.to_dict().items():
        print(f"  {name}: {feature:.2f}")
    print(f"Matched genres: {', '.join(inferred.matched_genres) or '-'}")
    print(f"Confidence: {inferred.confidence:.2f} ({inferred.source})")
    print(f"Feels score: {value} ({get_mood_label(value).value})")


@cli.command()
@click.argument("video")
@click.argument("title")
@click.option("--channel", default="", help="Uploader channel name used as a hint")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--log-level", default=None, help="Logging level")
def match(video, title, channel, config, as_json, log_level):
    """Match one video (id or URL) and print its feels score."""
    cfg = _load(config)
    _setup_logging(cfg, log_level)

    video_id = extract_video_id(video) or video
    orchestrator = MatchOrchestrator(cfg)
    try:
        results = asyncio.run(_match_async(orchestrator, [(video_id, title, channel)], False))
    except KeyboardInterrupt:
        logging.info("Match interrupted by user")
        sys.exit(1)

    result = results[0]
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)


@cli.command("match-file")
@click.argument("videos_file", type=click.Path(exists=True))
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--output", "-o", type=click.Path(), help="Write results as JSON lines")
@click.option("--no-progress", is_flag=True, help="Disable the progress bar")
@click.option("--log-level", default=None, help="Logging level")
def match_file(videos_file, config, output, no_progress, log_level):
    """Match every video in a tab-separated file (id, title, channel)."""
    cfg = _load(config)
    _setup_logging(cfg, log_level)

    try:
        videos = _read_video_file(videos_file)
    except (IOError, OSError, UnicodeDecodeError) as e:
        print(f"Error reading videos file: {e}")
        sys.exit(1)

    if not videos:
        print("No videos found in file")
        sys.exit(1)

    orchestrator = MatchOrchestrator(cfg)
    try:
        results = asyncio.run(_match_async(orchestrator, videos, not no_progress))
    except KeyboardInterrupt:
        logging.info("Matching interrupted by user")
        sys.exit(1)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            for result in results:
                f.write(json.dumps(result.to_dict()) + "\n")

    matched = [r for r in results if r.matched]
    distribution = score_distribution(matched)

    print("\n" + "=" * 50)
    print("MATCH RESULTS")
    print("=" * 50)
    print(f"Videos: {len(results)}")
    print(f"Matched: {len(matched)}")
    print(f"From cache: {sum(1 for r in results if r.cached)}")
    if matched:
        print(
            f"Feels score: avg {distribution['average']}, "
            f"min {distribution['min']}, max {distribution['max']}"
        )
        print("\nMood distribution:")
        for band, count in distribution["ranges"].items():
            print(f"  {band}: {count}")
    if output:
        print(f"\nResults written to: {output}")


@cli.command("cache-stats")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to configuration file")
def cache_stats(config):
    """Show result cache statistics."""
    cfg = _load(config)
    stats = asyncio.run(_cache_stats_async(cfg))

    print("\n" + "=" * 50)
    print("CACHE STATISTICS")
    print("=" * 50)
    print(f"Mode: {stats['mode']}")
    if stats["backend_size"] is None:
        print("Stored entries: n/a (in-memory cache lives only inside one process)")
    else:
        print(f"Stored entries: {stats['backend_size']}")
    print(f"Default TTL: {stats['default_ttl_seconds']}s")


@cli.command()
@click.option("--output", "-o", default="config_template.yaml", help="Output path for template")
def create_config(output):
    """Create a configuration file template."""
    save_config_template(output)
    print(f"Configuration template saved to: {output}")


if __name__ == "__main__":
    cli()
