"""NebraBreath command-line interface.

Argparse-based CLI that initializes logging early. Exposed via
``python -m nebrabreath``. Logs go to stderr and the rotating log file so
JSON written to stdout (``--json``, ``simulate``) stays machine readable.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from .catalog.loader import Catalog
from .catalog.models import RankFilter
from .engine.scheduling import ManualClock
from .errors import ConfigurationError
from .logging_utils import setup_logging, get_default_log_path, LogMode
from .platform_paths import get_settings_path
from .services.settings import SessionSettings
from .session.events import SessionEvent, SessionEventEmitter, SessionEventType

logger = logging.getLogger(__name__)


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set log level (default: INFO)",
    )
    parser.add_argument(
        "--log-mode",
        choices=[mode.value for mode in LogMode],
        default=None,
        help="Logging preset: quiet suppresses console info, perf forces DEBUG "
             "(default: settings / NEBRABREATH_LOG_MODE)",
    )
    parser.add_argument(
        "--log-file",
        default=str(get_default_log_path()),
        help="Path to log file (default: per-user NebraBreath directory)",
    )
    parser.add_argument(
        "--log-format",
        choices=["plain", "json"],
        default="plain",
        help="Log format (plain or json)",
    )


def _build_logging_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    _add_logging_args(parent)
    return parent


def _build_data_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--catalog", type=Path, default=None,
                        help="Catalog JSON file (default: bundled catalog)")
    parent.add_argument("--settings", type=Path, default=None,
                        help="Settings JSON file (default: per-user settings.json)")
    return parent


def _add_selection_args(parser: argparse.ArgumentParser) -> None:
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--technique", type=str, help="Technique id to play")
    target.add_argument("--preset", type=str, help="Preset id to play")


def build_parser() -> argparse.ArgumentParser:
    logging_parent = _build_logging_parent()
    data_parent = _build_data_parent()
    parser = argparse.ArgumentParser(
        prog="nebrabreath",
        description="NebraBreath CLI",
        parents=[logging_parent],
    )
    sub = parser.add_subparsers(dest="command", required=False)

    def add_subparser(name: str, **kwargs: object) -> argparse.ArgumentParser:
        parents = list(kwargs.pop("parents", []))
        parents[:0] = [logging_parent, data_parent]
        return sub.add_parser(name, parents=parents, **kwargs)

    p_catalog = add_subparser("catalog", help="List techniques ordered by rank")
    p_catalog.add_argument("--filter", dest="rank_filter", default=RankFilter.PAS.value,
                           help=f"Rank key ({', '.join(f.value for f in RankFilter)}); "
                                "unknown keys keep catalog order")
    p_catalog.add_argument("--json", action="store_true", help="Print JSON")

    p_presets = add_subparser("presets", help="List presets and their segment plans")
    p_presets.add_argument("--json", action="store_true", help="Print JSON")

    p_sim = add_subparser("simulate", help="Run a session on virtual time and print events as JSON lines")
    _add_selection_args(p_sim)
    p_sim.add_argument("--seconds", type=float, required=True, help="Virtual seconds to simulate")
    p_sim.add_argument("--frame-ms", type=float, default=None, help="Virtual frame length (default: settings, 16)")
    p_sim.add_argument("--no-ticks", action="store_true", help="Omit SECOND_TICK events from the output")

    p_run = add_subparser("run", help="Run a real-time headless session on a Qt event loop")
    _add_selection_args(p_run)
    p_run.add_argument("--seconds", type=float, default=None, help="Stop after N seconds (default: until Ctrl+C or preset end)")
    p_run.add_argument("--daily-log", type=Path, default=None, help="Daily log JSON file")
    p_run.add_argument("--health-file", type=Path, default=None, help="Health export JSON-lines file")

    p_log = add_subparser("log", help="Show practiced seconds and compliance for a day")
    p_log.add_argument("--date", type=str, default=None, help="Day as YYYY-MM-DD (default: today)")
    p_log.add_argument("--daily-log", type=Path, default=None, help="Daily log JSON file")
    p_log.add_argument("--json", action="store_true", help="Print JSON")
    p_log.add_argument("--reset", action="store_true", help="Delete all logged days")

    return parser


# ===== Helpers =====


def _load_catalog(args: argparse.Namespace) -> Catalog:
    path = getattr(args, "catalog", None)
    return Catalog.load(path) if path else Catalog.builtin()


def _load_settings(args: argparse.Namespace) -> SessionSettings:
    path = getattr(args, "settings", None) or get_settings_path()
    return SessionSettings.load(path).with_env()


def _print_json(payload: object) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str))


# ===== Commands =====


def cmd_catalog(args: argparse.Namespace, catalog: Catalog) -> int:
    techniques = catalog.sorted_techniques(args.rank_filter)
    if args.json:
        _print_json([
            {"rank": tech.rank_for(args.rank_filter), **tech.to_dict()} for tech in techniques
        ])
        return 0
    for tech in techniques:
        cycle_s = tech.cycle_duration_ms / 1000.0
        print(f"{tech.rank_for(args.rank_filter):>3}  {tech.id:<14} {tech.display_name:<28} {cycle_s:>5.1f}s/cycle")
    return 0


def cmd_presets(args: argparse.Namespace, catalog: Catalog) -> int:
    presets = list(catalog.presets.values())
    if args.json:
        _print_json([preset.to_dict() for preset in presets])
        return 0
    for preset in presets:
        plan = " -> ".join(f"{seg.technique_id} {seg.duration_seconds}s" for seg in preset.segments)
        print(f"{preset.id:<12} {preset.label or preset.id:<24} {preset.total_duration_seconds():>4}s  {plan}")
    return 0


def cmd_simulate(args: argparse.Namespace, catalog: Catalog, settings: SessionSettings) -> int:
    from .session.controller import SessionController

    if args.seconds < 0:
        print("--seconds cannot be negative", file=sys.stderr)
        return 2

    clock = ManualClock(frame_interval_ms=args.frame_ms or settings.frame_interval_ms)
    epoch = datetime.now(timezone.utc)
    emitter = SessionEventEmitter(clock=lambda: round(clock.now_ms / 1000.0, 3))

    def print_event(event: SessionEvent) -> None:
        if args.no_ticks and event.event_type is SessionEventType.SECOND_TICK:
            return
        _print_json(event.to_dict())

    emitter.subscribe_all(print_event)
    controller = SessionController(
        catalog,
        clock.frame_scheduler(),
        clock.interval_timer(settings.tick_interval_ms),
        settings=settings,
        on_sleep_threshold=settings.apply_sleep_threshold,
        event_emitter=emitter,
        wall_clock=lambda: epoch + timedelta(milliseconds=clock.now_ms),
    )

    try:
        if args.preset:
            controller.start_preset(args.preset)
        else:
            controller.start(args.technique)
    except ConfigurationError as exc:
        logger.error(f"[cli] Cannot start session: {exc}")
        print(f"error: {exc}", file=sys.stderr)
        return 1

    clock.advance(args.seconds * 1000.0)
    _print_json({"event": "SNAPSHOT", "timestamp": round(clock.now_ms / 1000.0, 3),
                 "data": controller.snapshot().to_dict()})
    controller.reset()
    return 0


def cmd_run(args: argparse.Namespace, catalog: Catalog, settings: SessionSettings) -> int:
    # Qt is only needed for the real-time host
    from PyQt6.QtCore import QCoreApplication, QTimer
    from .engine.qt_timers import QtFrameScheduler, QtIntervalTimer
    from .services.daily_log import DailyLogStore
    from .services.health import JsonlHealthExporter
    from .session.collaborators import LoggingAudio
    from .session.controller import SessionController

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    daily_log = DailyLogStore(catalog.compliance_thresholds, path=args.daily_log)
    health = JsonlHealthExporter(path=args.health_file)

    controller = SessionController(
        catalog,
        QtFrameScheduler(settings.frame_interval_ms),
        QtIntervalTimer(settings.tick_interval_ms),
        settings=settings,
        audio=LoggingAudio(),
        tick_logger=daily_log,
        health_exporter=health,
        on_sleep_threshold=settings.apply_sleep_threshold,
    )
    emitter = controller.event_emitter
    emitter.subscribe(
        SessionEventType.STEP_START,
        lambda e: print(f"[{controller.total_elapsed_seconds:>4}s] {e.data['technique_id']:<14} "
                        f"{e.data['action']:<8} {e.data['duration_ms'] / 1000.0:g}s", flush=True),
    )
    emitter.subscribe(SessionEventType.PRESET_COMPLETE, lambda e: app.quit())
    emitter.subscribe(SessionEventType.ERROR, lambda e: print(f"warning: {e.data['message']}", file=sys.stderr))

    try:
        if args.preset:
            controller.start_preset(args.preset)
        else:
            controller.start(args.technique)
    except ConfigurationError as exc:
        logger.error(f"[cli] Cannot start session: {exc}")
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.seconds is not None and args.seconds > 0:
        QTimer.singleShot(int(args.seconds * 1000), app.quit)

    # Let Python process Ctrl+C while the Qt loop runs
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    heartbeat = QTimer()
    heartbeat.start(200)
    heartbeat.timeout.connect(lambda: None)

    app.exec()
    heartbeat.stop()

    total = controller.total_elapsed_seconds
    controller.reset()
    compliance = daily_log.compliance()
    print(f"Session: {total}s. Today's protocol: {compliance.done_count}/{compliance.total}"
          f"{' (complete)' if compliance.completed else ''}")
    return 0


def cmd_log(args: argparse.Namespace, catalog: Catalog) -> int:
    from .services.daily_log import DailyLogStore

    store = DailyLogStore(catalog.compliance_thresholds, path=args.daily_log)
    if args.reset:
        store.reset_data()
        print("Daily log cleared")
        return 0

    day_key = args.date or store.today_key
    day = store.day(day_key)
    compliance = store.compliance(day_key)
    week = store.weekly_minutes()
    if args.json:
        _print_json({
            "date": day_key,
            **day,
            "compliance": compliance.to_dict(),
            "week": [{"date": d.date, "dayName": d.day_name, "minutes": d.minutes} for d in week],
            "totalMinutes": store.total_minutes(),
        })
        return 0

    print(f"{day_key}: protocol {compliance.done_count}/{compliance.total}"
          f"{' complete' if compliance.completed else ''}")
    for tech_id, seconds in sorted(day["techSeconds"].items()):
        needed = catalog.compliance_thresholds.get(tech_id)
        goal = f" / {needed}s" if needed else ""
        print(f"  {tech_id:<14} {seconds:>5}s{goal}")
    print("Last 7 days: " + "  ".join(f"{d.day_name} {d.minutes}m" for d in week))
    print(f"Total: {store.total_minutes()} min")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cmd = args.command
    if cmd is None:
        parser.print_help()
        return 2

    try:
        settings = _load_settings(args)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    # Configure logging before doing any work
    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        json_format=(args.log_format == "json"),
        log_mode=args.log_mode or settings.log_mode,
        add_console=True,
    )

    try:
        catalog = _load_catalog(args)
    except (ConfigurationError, FileNotFoundError) as exc:
        logger.error(f"[cli] Catalog unavailable: {exc}")
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if cmd == "catalog":
        return cmd_catalog(args, catalog)
    if cmd == "presets":
        return cmd_presets(args, catalog)
    if cmd == "simulate":
        return cmd_simulate(args, catalog, settings)
    if cmd == "run":
        return cmd_run(args, catalog, settings)
    if cmd == "log":
        return cmd_log(args, catalog)

    parser.print_help()
    return 2


if __name__ == "__main__":  # Allow direct module execution
    raise SystemExit(main())
