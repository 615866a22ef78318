"""Logging setup for NebraBreath hosts.

Library modules only call ``logging.getLogger(__name__)`` and tag their
messages (``[session]``, ``[timer]``, ``[clock.trace]``...). The CLI calls
:func:`setup_logging` once: a rotating file in the per-user log directory,
an optional stderr console, and a log mode that decides how chatty both are.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

from .platform_paths import get_log_dir


DEFAULT_LOG_FILENAME = "nebrabreath.log"
LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3

# Per-frame messages; dropped unless the frame trace is enabled
TRACE_TAGS: Tuple[str, ...] = ("[clock.trace]",)
FRAME_TRACE_ENV = "NEBRABREATH_FRAME_TRACE"


class LogMode(str, Enum):
    """Verbosity presets.

    quiet: console shows warnings and errors only
    normal: levels as requested
    perf: everything at DEBUG, frame trace included
    """

    QUIET = "quiet"
    NORMAL = "normal"
    PERF = "perf"


_active_mode: LogMode = LogMode.NORMAL


def parse_log_mode(mode: LogMode | str | None) -> LogMode:
    """Lenient conversion; unknown names fall back to NORMAL."""
    if isinstance(mode, LogMode):
        return mode
    if not mode:
        return LogMode.NORMAL
    try:
        return LogMode(str(mode).strip().lower())
    except ValueError:
        return LogMode.NORMAL


def set_log_mode(mode: LogMode | str | None) -> LogMode:
    global _active_mode
    _active_mode = parse_log_mode(mode)
    return _active_mode


def get_log_mode() -> LogMode:
    return _active_mode


def is_perf_logging_enabled() -> bool:
    return _active_mode is LogMode.PERF


def is_quiet_logging_enabled() -> bool:
    return _active_mode is LogMode.QUIET


def frame_trace_enabled() -> bool:
    if os.environ.get(FRAME_TRACE_ENV, "").strip().lower() in {"1", "true", "yes", "on"}:
        return True
    return is_perf_logging_enabled()


def get_default_log_dir() -> Path:
    """Per-user log directory; the working directory if it cannot be created."""
    log_dir = get_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        return Path.cwd()
    return log_dir


def get_default_log_path() -> Path:
    return get_default_log_dir() / DEFAULT_LOG_FILENAME


class _TraceFilter(logging.Filter):
    """Drops records tagged with a TRACE_TAGS prefix unless frame trace is on."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not isinstance(record.msg, str):
            return True
        if record.msg.startswith(TRACE_TAGS):
            return frame_trace_enabled()
        return True


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, for log shippers and ``--log-format json``."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": round(record.created, 3),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_TRACE_FILTER = _TraceFilter()
_PLAIN_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def _levels_for(mode: LogMode, requested: int) -> Tuple[int, int]:
    """(console level, file level) for *mode*."""
    if mode is LogMode.PERF:
        return logging.DEBUG, logging.DEBUG
    if mode is LogMode.QUIET:
        return max(requested, logging.WARNING), requested
    return requested, requested


def _is_console(handler: logging.Handler) -> bool:
    return type(handler) is logging.StreamHandler


def setup_logging(
    *,
    level: str | int = "INFO",
    log_file: Optional[str | Path] = None,
    json_format: bool = False,
    logger_name: Optional[str] = None,
    log_mode: LogMode | str | None = None,
    add_console: bool = True,
) -> logging.Logger:
    """Configure the root logger (or *logger_name*) for a NebraBreath host.

    Args:
        level: Requested level name or number
        log_file: Rotating log file (default: per-user log directory)
        json_format: Emit one JSON object per line instead of plain text
        logger_name: Configure this logger instead of the root logger
        log_mode: quiet / normal / perf; keeps the current mode when omitted
        add_console: Also log to stderr

    Calling it again only re-tunes levels on the handlers it already added.
    """
    mode = set_log_mode(log_mode) if log_mode is not None else get_log_mode()
    console_level, file_level = _levels_for(mode, _resolve_level(level))

    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    logger.setLevel(min(console_level, file_level))
    if _TRACE_FILTER not in logger.filters:
        logger.addFilter(_TRACE_FILTER)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(console_level if _is_console(handler) else file_level)
        return logger

    formatter: logging.Formatter
    if json_format:
        formatter = JsonLineFormatter()
    else:
        formatter = logging.Formatter(fmt=_PLAIN_FORMAT, datefmt="%H:%M:%S")

    log_path = Path(log_file) if log_file else get_default_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
        )
    except OSError:
        file_handler = None
    if file_handler is not None:
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if add_console:
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(formatter)
        logger.addHandler(console)

    return logger


class BurstSampler:
    """Counts high-rate events and reports the count once per time window.

    The Phase Clock records every frame here and logs a single
    ``[clock.trace]`` line per window instead of one line per frame.
    """

    def __init__(self, interval_s: float = 2.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval_s = max(0.1, float(interval_s))
        self._clock = clock
        self._window_start = clock()
        self._pending = 0

    @property
    def pending(self) -> int:
        return self._pending

    def record(self, amount: int = 1) -> Optional[int]:
        """Add *amount* events; returns the window total when the window closes."""
        self._pending += max(0, amount)
        now = self._clock()
        if now - self._window_start < self.interval_s:
            return None
        return self._close(now)

    def flush(self) -> int:
        """Close the current window early and return its count."""
        return self._close(self._clock())

    def _close(self, now: float) -> int:
        total, self._pending = self._pending, 0
        self._window_start = now
        return total
