"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from julesbridge.config import LoggingConfig
from julesbridge.logging import TRACE, VERBOSE, get_logger, logger, resolve_level, setup_logging


class TestResolveLevel:
    @pytest.mark.parametrize(
        ("config", "expected"),
        [
            (None, logging.INFO),
            (LoggingConfig(), logging.INFO),
            (LoggingConfig(level="debug"), logging.DEBUG),
            (LoggingConfig(level="nonsense"), logging.INFO),
            (LoggingConfig(verbose=0), logging.ERROR),
            (LoggingConfig(verbose=3), VERBOSE),
            (LoggingConfig(verbose=9), TRACE),
            (LoggingConfig(level="error", verbose=2), logging.INFO),
        ],
    )
    def test_levels(self, config: LoggingConfig | None, expected: int) -> None:
        assert resolve_level(config) == expected


class TestSetupLogging:
    def test_file_handler(self, tmp_path: Path) -> None:
        log_file = tmp_path / "bridge.log"
        setup_logging(LoggingConfig(level="debug", file=str(log_file)))

        get_logger("test").debug("hello %s", "file")
        for handler in logger.handlers:
            handler.flush()

        assert "debug: hello file" in log_file.read_text(encoding="utf-8")

    def test_second_call_is_noop(self, tmp_path: Path) -> None:
        setup_logging(LoggingConfig(file=str(tmp_path / "a.log")))
        count = len(logger.handlers)
        setup_logging(LoggingConfig(file=str(tmp_path / "b.log")))
        assert len(logger.handlers) == count
        assert not (tmp_path / "b.log").exists()

    def test_forced_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingConfig(level="info"), force_stderr=True)
        get_logger("cli").info("to stderr")
        captured = capsys.readouterr()
        assert "to stderr" in captured.err
        assert captured.out == ""

    def test_child_logger_names(self) -> None:
        assert get_logger().name == "julesbridge"
        assert get_logger("api").name == "julesbridge.api"
