"""Tests for structured logging of patch requests.

Tests cover:
- JSON output to a log file
- Request-scoped context from patch_context
- Context binding helpers
- Event filters
- Environment-driven LogConfig
"""
import json
import logging
from pathlib import Path
from typing import Generator, List

import pytest

from patchwise.logging import (
    LogConfig,
    LogFormat,
    LogLevel,
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    patch_context,
    unbind_context,
)
from patchwise.patch import patch_text


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def log_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Configure JSON logging at DEBUG into a temp file; restore defaults afterwards."""
    path = tmp_path / "logs" / "patchwise.log"
    configure_logging(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, log_file=path))
    yield path
    clear_context()
    configure_logging()


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def read_events(path: Path) -> List[dict]:
    """Flush handlers and parse every JSON line in the log file."""
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------
class TestPatchLogging:
    def test_applied_patch_is_logged_with_context(self, log_file: Path) -> None:
        patch_text("a\nb\n", "-b\n+B", path="notes.txt")
        events = read_events(log_file)
        applied = [e for e in events if e.get("event") == "Patch applied"]
        assert applied
        assert applied[-1]["path"] == "notes.txt"
        assert applied[-1]["op"] == "update"
        assert applied[-1]["hunks"] == 1
        assert applied[-1]["level"] == "info"

    def test_hunk_strategy_logged_at_debug(self, log_file: Path) -> None:
        patch_text("a\nb\n", "-b\n+B", path="notes.txt")
        located = [e for e in read_events(log_file) if e.get("event") == "Hunk located"]
        assert located
        assert located[-1]["strategy"] == "exact"
        assert located[-1]["line"] == 2

    def test_rejected_patch_is_logged(self, log_file: Path) -> None:
        with pytest.raises(Exception):
            patch_text("a\nb\na\n", "-a\n+A", path="dup.txt")
        rejected = [e for e in read_events(log_file) if e.get("event") == "Patch rejected"]
        assert rejected
        assert rejected[-1]["kind"] == "ambiguous_match"
        assert rejected[-1]["level"] == "warning"

    def test_context_does_not_leak(self, log_file: Path) -> None:
        patch_text("a\n", "-a\n+b", path="x.txt")
        assert "path" not in get_context()

    def test_filter_drops_events(self, tmp_path: Path) -> None:
        path = tmp_path / "filtered.log"
        configure_logging(
            LogConfig(
                level=LogLevel.DEBUG,
                format=LogFormat.JSON,
                log_file=path,
                filters=[lambda event: None if event.get("event") == "dropped" else event],
            )
        )
        try:
            logger = get_logger("tests.logging.filtered")
            logger.info("dropped")
            logger.info("kept")
            events = [e["event"] for e in read_events(path)]
            assert "kept" in events
            assert "dropped" not in events
        finally:
            configure_logging()


class TestContextHelpers:
    def test_bind_and_unbind(self) -> None:
        clear_context()
        bind_context(request_id="r1", user="u")
        assert get_context() == {"request_id": "r1", "user": "u"}
        unbind_context("user")
        assert get_context() == {"request_id": "r1"}
        clear_context()
        assert get_context() == {}

    def test_patch_context_restores_on_error(self) -> None:
        clear_context()
        bind_context(outer=True)
        with pytest.raises(RuntimeError):
            with patch_context(path="a.py", op="update") as bound:
                assert bound["path"] == "a.py"
                assert get_context()["outer"] is True
                raise RuntimeError("boom")
        assert get_context() == {"outer": True}
        clear_context()


class TestLogConfigFromEnv:
    def test_reads_variables(self, tmp_path: Path) -> None:
        config = LogConfig.from_env(
            {
                "PATCHWISE_LOG_LEVEL": "debug",
                "PATCHWISE_LOG_FORMAT": "JSON",
                "PATCHWISE_LOG_FILE": str(tmp_path / "p.log"),
            }
        )
        assert config.level == LogLevel.DEBUG
        assert config.format == LogFormat.JSON
        assert config.log_file == tmp_path / "p.log"

    def test_defaults(self) -> None:
        config = LogConfig.from_env({})
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.PLAIN
        assert config.log_file is None

    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError):
            LogConfig.from_env({"PATCHWISE_LOG_LEVEL": "chatty"})
