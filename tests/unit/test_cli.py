"""Unit tests for cli.py."""

import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feelsmeter.cache.backends import SQLiteCacheBackend
from feelsmeter.cli import _read_video_file, cli
from feelsmeter.orchestrator import MatchResult

MATCHED = MatchResult(
    video_id="dQw4w9WgXcQ",
    matched=True,
    parse_confidence=0.8,
    parsed={"artist": "rick astley", "song": "never gonna give you up", "confidence": 0.8},
    track={"id": "mb-1", "title": "Never Gonna Give You Up", "artist": "Rick Astley",
           "genre_tags": ["pop"]},
    features={"energy": 0.65},
    feels_score=66,
    mood="Energetic",
    color="#F57C00",
    genre_confidence=0.6,
    match_confidence=1.0,
)
UNMATCHED = MatchResult(
    video_id="zzz", matched=False, parse_confidence=0.3, reason="not_found"
)


class TestCLICommands:
    """Test cases for CLI commands."""

    @pytest.fixture
    def runner(self):
        """Create a Click test runner."""
        return CliRunner()

    @pytest.fixture
    def mock_orchestrator(self):
        """Patch MatchOrchestrator with an async mock."""
        orchestrator = MagicMock()
        orchestrator.initialize = AsyncMock()
        orchestrator.close = AsyncMock()
        orchestrator.match_videos = AsyncMock(return_value=[MATCHED])
        with patch("feelsmeter.cli.MatchOrchestrator", return_value=orchestrator), patch(
            "feelsmeter.cli.setup_logging"
        ):
            yield orchestrator

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("parse", "score", "infer", "match", "match-file", "cache-stats"):
            assert command in result.output

    def test_parse(self, runner):
        result = runner.invoke(
            cli, ["parse", "Rick Astley - Never Gonna Give You Up (Official Video)"]
        )

        assert result.exit_code == 0
        assert "Artist: rick astley" in result.output
        assert "Song: never gonna give you up" in result.output
        assert "Pattern: dash" in result.output

    def test_parse_with_channel(self, runner):
        result = runner.invoke(cli, ["parse", "Bohemian Rhapsody", "--channel", "QueenVEVO"])

        assert result.exit_code == 0
        assert "Artist: Queen" in result.output
        assert "Confidence: 0.40" in result.output

    def test_score_max(self, runner):
        result = runner.invoke(
            cli,
            [
                "score",
                "--energy", "1", "--tempo", "200", "--danceability", "1",
                "--loudness", "-5", "--valence", "1", "--acousticness", "0",
            ],
        )

        assert result.exit_code == 0
        assert "Feels score: 100" in result.output
        assert "Mood: Intense" in result.output
        assert "#E74C3C" in result.output

    def test_infer(self, runner):
        result = runner.invoke(cli, ["infer", "-g", "metal", "-g", "heavy metal"])

        assert result.exit_code == 0
        assert "Matched genres: metal, heavy metal" in result.output
        assert "Confidence: 0.70 (genre-heuristic)" in result.output

    def test_match(self, runner, mock_orchestrator):
        result = runner.invoke(
            cli,
            [
                "match",
                "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                "Rick Astley - Never Gonna Give You Up",
            ],
        )

        assert result.exit_code == 0
        assert "Feels score: 66 (Energetic, #F57C00)" in result.output
        mock_orchestrator.match_videos.assert_awaited_once_with(
            [("dQw4w9WgXcQ", "Rick Astley - Never Gonna Give You Up", "")], show_progress=False
        )
        mock_orchestrator.close.assert_awaited_once()

    def test_match_json(self, runner, mock_orchestrator):
        result = runner.invoke(cli, ["match", "dQw4w9WgXcQ", "Rick Astley - Never", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["feels_score"] == 66

    def test_match_unmatched(self, runner, mock_orchestrator):
        mock_orchestrator.match_videos.return_value = [UNMATCHED]

        result = runner.invoke(cli, ["match", "zzz", "Nobody - Nothing"])

        assert result.exit_code == 0
        assert "No match (not_found)" in result.output

    def test_match_file(self, runner, mock_orchestrator):
        mock_orchestrator.match_videos.return_value = [MATCHED, UNMATCHED]

        with runner.isolated_filesystem():
            Path("videos.tsv").write_text(
                "# id\ttitle\tchannel\n"
                "dQw4w9WgXcQ\tRick Astley - Never Gonna Give You Up\tRickAstleyVEVO\n"
                "zzz\tNobody - Nothing\n",
                encoding="utf-8",
            )
            result = runner.invoke(
                cli, ["match-file", "videos.tsv", "--output", "out.jsonl", "--no-progress"]
            )
            lines = Path("out.jsonl").read_text(encoding="utf-8").splitlines()

        assert result.exit_code == 0
        assert "Videos: 2" in result.output
        assert "Matched: 1" in result.output
        assert "energetic: 1" in result.output
        assert len(lines) == 2
        assert json.loads(lines[1])["video_id"] == "zzz"

    def test_match_file_empty(self, runner, mock_orchestrator):
        with runner.isolated_filesystem():
            Path("videos.tsv").write_text("# nothing here\n", encoding="utf-8")
            result = runner.invoke(cli, ["match-file", "videos.tsv"])

        assert result.exit_code == 1
        assert "No videos found" in result.output

    def test_cache_stats(self, runner):
        result = runner.invoke(cli, ["cache-stats"])

        assert result.exit_code == 0
        assert "Mode: memory" in result.output
        assert "Stored entries: n/a" in result.output

    def test_cache_stats_reports_sqlite_entries(self, runner):
        """Test the durable backend's row count is reported."""
        with runner.isolated_filesystem():
            backend = SQLiteCacheBackend("feels.db")

            async def seed():
                await backend.initialize()
                await backend.mset(
                    {"match:a": {"matched": True}, "match:b": {"matched": False}}, 60
                )

            asyncio.run(seed())
            Path("config.yaml").write_text(
                "cache:\n  backend: sqlite\n  sqlite_path: feels.db\n", encoding="utf-8"
            )
            result = runner.invoke(cli, ["cache-stats", "--config", "config.yaml"])

        assert result.exit_code == 0
        assert "Mode: sqlite" in result.output
        assert "Stored entries: 2" in result.output

    def test_create_config(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["create-config", "--output", "test_config.yaml"])

            assert result.exit_code == 0
            assert Path("test_config.yaml").exists()

    def test_invalid_config_is_reported(self, runner):
        with runner.isolated_filesystem():
            Path("bad.yaml").write_text("{ invalid: yaml: broken }")
            result = runner.invoke(cli, ["infer", "-g", "rock", "--config", "bad.yaml"])

        assert result.exit_code != 0
        assert "Invalid YAML" in result.output


class TestReadVideoFile:
    def test_parses_rows(self, tmp_path):
        path = tmp_path / "videos.tsv"
        path.write_text(
            "https://youtu.be/abc123\tArtist - Song\tChannel\n"
            "\n"
            "malformed line without tabs\n"
            "def456\tOther - Title\n",
            encoding="utf-8",
        )

        assert _read_video_file(str(path)) == [
            ("abc123", "Artist - Song", "Channel"),
            ("def456", "Other - Title", ""),
        ]
