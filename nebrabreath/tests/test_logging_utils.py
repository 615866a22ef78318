"""Tests for centralized logging configuration."""

import json
import logging
from pathlib import Path

import pytest

from nebrabreath.logging_utils import (
    BurstSampler,
    LogMode,
    get_log_mode,
    is_perf_logging_enabled,
    is_quiet_logging_enabled,
    parse_log_mode,
    set_log_mode,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_log_mode():
    yield
    set_log_mode(LogMode.NORMAL)


def _close_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_setup_logging_writes_to_file(tmp_path: Path):
    log_file = tmp_path / "test.log"
    logger = setup_logging(
        level="DEBUG",
        log_file=str(log_file),
        add_console=False,
        logger_name="test_logging_utils.file",
    )
    logger.info("hello breath")
    for handler in logger.handlers:
        handler.flush()
    assert "hello breath" in log_file.read_text(encoding="utf-8")
    _close_handlers(logger)


def test_setup_logging_idempotent(tmp_path: Path):
    log_file = tmp_path / "test2.log"
    name = "test_logging_utils.idempotent"
    logger1 = setup_logging(level="INFO", log_file=str(log_file), logger_name=name)
    count = len(logger1.handlers)
    logger2 = setup_logging(level="WARNING", log_file=str(log_file), logger_name=name)
    assert logger1 is logger2
    assert len(logger2.handlers) == count
    assert logger2.level == logging.WARNING
    _close_handlers(logger2)


def test_log_mode_helpers_roundtrip():
    set_log_mode(LogMode.PERF)
    assert get_log_mode() is LogMode.PERF
    assert is_perf_logging_enabled() is True
    set_log_mode("quiet")
    assert get_log_mode() is LogMode.QUIET
    assert is_quiet_logging_enabled() is True


def test_parse_log_mode_falls_back_to_normal():
    assert parse_log_mode(None) is LogMode.NORMAL
    assert parse_log_mode("PERF") is LogMode.PERF
    assert parse_log_mode("chatty") is LogMode.NORMAL


def test_setup_logging_perf_forces_debug(tmp_path: Path):
    logger = setup_logging(
        level="INFO",
        log_file=str(tmp_path / "perf.log"),
        log_mode=LogMode.PERF,
        logger_name="test_logging_utils.perf",
    )
    assert logger.level == logging.DEBUG
    _close_handlers(logger)


def test_quiet_mode_raises_console_level(tmp_path: Path):
    logger = setup_logging(
        level="INFO",
        log_file=str(tmp_path / "quiet.log"),
        log_mode="quiet",
        logger_name="test_logging_utils.quiet",
    )
    consoles = [h for h in logger.handlers if type(h) is logging.StreamHandler]
    assert consoles and all(h.level == logging.WARNING for h in consoles)
    _close_handlers(logger)


def test_frame_trace_filtered_unless_enabled(tmp_path: Path, monkeypatch):
    log_file = tmp_path / "trace.log"
    logger = setup_logging(level="DEBUG", log_file=str(log_file), add_console=False,
                           logger_name="test_logging_utils.trace")
    logger.debug("[clock.trace] 60 frames")
    monkeypatch.setenv("NEBRABREATH_FRAME_TRACE", "1")
    logger.debug("[clock.trace] 61 frames")
    for handler in logger.handlers:
        handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "60 frames" not in text
    assert "61 frames" in text
    _close_handlers(logger)


class TestBurstSampler:
    def test_reports_count_once_per_window(self):
        now = {"t": 0.0}
        sampler = BurstSampler(interval_s=1.0, clock=lambda: now["t"])
        assert sampler.record() is None
        now["t"] = 0.5
        assert sampler.record() is None
        now["t"] = 1.0
        assert sampler.record() == 3
        assert sampler.record() is None

    def test_flush(self):
        sampler = BurstSampler(interval_s=10.0, clock=lambda: 0.0)
        sampler.record(5)
        assert sampler.flush() == 5
        assert sampler.flush() == 0


def test_json_format_writes_one_object_per_line(tmp_path: Path):
    log_file = tmp_path / "json.log"
    logger = setup_logging(level="INFO", log_file=str(log_file), json_format=True, add_console=False,
                           logger_name="test_logging_utils.json")
    logger.info("[session] Started '%s'", "box")
    for handler in logger.handlers:
        handler.flush()
    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[0])
    assert record["level"] == "INFO"
    assert record["logger"] == "test_logging_utils.json"
    assert record["msg"] == "[session] Started 'box'"
    _close_handlers(logger)
