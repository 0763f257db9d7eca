"""Unit tests for utils.py."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feelsmeter.utils import extract_playlist_id, extract_video_id, setup_logging


class TestExtractVideoId:
    """Test cases for YouTube video id extraction."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("https://www.youtube.com/watch?list=PL1&v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("https://www.youtube.com/embed/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ],
    )
    def test_supported_forms(self, url, expected):
        assert extract_video_id(url) == expected

    @pytest.mark.parametrize("url", [None, "", "https://example.com/video"])
    def test_unsupported(self, url):
        assert extract_video_id(url) is None


class TestExtractPlaylistId:
    def test_query_parameter(self):
        assert extract_playlist_id("https://www.youtube.com/playlist?list=PLabc_123") == (
            "PLabc_123"
        )

    def test_secondary_parameter(self):
        assert extract_playlist_id("https://www.youtube.com/watch?v=x&list=PLxyz") == "PLxyz"

    def test_missing(self):
        assert extract_playlist_id("https://www.youtube.com/watch?v=x") is None
        assert extract_playlist_id(None) is None


class TestSetupLogging:
    """Test cases for logging configuration."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            handler.close()
        root.handlers = handlers
        root.setLevel(level)

    def test_file_and_console_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "feels.log"

        setup_logging(logging.DEBUG, log_file=str(log_file))
        logging.getLogger("feelsmeter.test").debug("hello")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)
        assert log_file.exists()

    def test_console_only(self):
        setup_logging(logging.INFO, log_file=None)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0], RotatingFileHandler)

    def test_http_loggers_are_quieted(self):
        setup_logging(logging.DEBUG, log_file=None, console_output=False)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
