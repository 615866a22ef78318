"""Daily practice log - per-day technique seconds and protocol compliance.

This is the per-second tick collaborator of the session controller. Every
active second is added to today's bucket for the technique that was active
during that second, and compliance against the catalog thresholds is
re-evaluated immediately.

File layout (``daily_log.json``)::

    {
      "2026-10-19": {
        "techSeconds": {"sigh": 40, "coherent": 212},
        "protocolCompleted": false
      }
    }
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Dict, Any, List, Mapping, NamedTuple, Optional

from ..session.collaborators import TickLogger
from ..platform_paths import get_daily_log_path

logger = logging.getLogger(__name__)

_DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass(frozen=True)
class Compliance:
    done_count: int
    total: int
    completed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"doneCount": self.done_count, "total": self.total, "completed": self.completed}


class DayMinutes(NamedTuple):
    """One bar of the weekly practice chart."""

    date: str
    day_name: str
    minutes: int


def check_compliance(tech_seconds: Mapping[str, int], thresholds: Mapping[str, int]) -> Compliance:
    """Count thresholds met by *tech_seconds*; completed when all are met."""
    done = sum(1 for tech_id, needed in thresholds.items() if tech_seconds.get(tech_id, 0) >= needed)
    return Compliance(done_count=done, total=len(thresholds), completed=done == len(thresholds))


class DailyLogStore(TickLogger):
    """Persistent per-day log of practiced seconds.

    Args:
        thresholds: Daily seconds required per technique id (catalog data)
        path: JSON file; defaults to the per-user data directory
        today: Date source (injectable for tests)
    """

    def __init__(
        self,
        thresholds: Mapping[str, int],
        path: Optional[Path] = None,
        today: Callable[[], date] = date.today,
    ):
        self.thresholds: Dict[str, int] = dict(thresholds)
        self.path = Path(path) if path is not None else get_daily_log_path()
        self._today = today
        self._log: Dict[str, Dict[str, Any]] = self._read()

    # ===== Queries =====

    @property
    def today_key(self) -> str:
        return self._today().isoformat()

    def day(self, day: Optional[str] = None) -> Dict[str, Any]:
        """Copy of one day's entry (today by default)."""
        entry = self._log.get(day or self.today_key) or {"techSeconds": {}, "protocolCompleted": False}
        return {"techSeconds": dict(entry["techSeconds"]), "protocolCompleted": entry["protocolCompleted"]}

    def seconds_for(self, technique_id: str, day: Optional[str] = None) -> int:
        return int(self.day(day)["techSeconds"].get(technique_id, 0))

    def compliance(self, day: Optional[str] = None) -> Compliance:
        return check_compliance(self.day(day)["techSeconds"], self.thresholds)

    def all_days(self) -> Dict[str, Dict[str, Any]]:
        return {key: self.day(key) for key in sorted(self._log)}

    def weekly_minutes(self, today: Optional[date] = None) -> List[DayMinutes]:
        """Minutes practiced on each of the last 7 days, oldest first, today last.

        Seconds are summed over all techniques and floored to whole minutes;
        days without an entry count as 0.
        """
        end = today or self._today()
        week = []
        for offset in range(6, -1, -1):
            day = end - timedelta(days=offset)
            seconds = sum(self.day(day.isoformat())["techSeconds"].values())
            week.append(DayMinutes(day.isoformat(), _DAY_NAMES[day.weekday()], seconds // 60))
        return week

    def total_minutes(self) -> int:
        """Lifetime practice across every logged day, floored to minutes."""
        seconds = sum(sum(entry["techSeconds"].values()) for entry in self._log.values())
        return seconds // 60

    # ===== Mutations =====

    def log_second(self, technique_id: str) -> None:
        self.log_seconds(technique_id, 1)

    def log_seconds(self, technique_id: str, seconds: int) -> None:
        """Add *seconds* to today's bucket and persist.

        Raises:
            OSError: If the log file cannot be written
        """
        key = self.today_key
        entry = self._log.setdefault(key, {"techSeconds": {}, "protocolCompleted": False})
        tech_seconds = entry["techSeconds"]
        tech_seconds[technique_id] = int(tech_seconds.get(technique_id, 0)) + seconds

        was_completed = entry["protocolCompleted"]
        entry["protocolCompleted"] = check_compliance(tech_seconds, self.thresholds).completed
        if entry["protocolCompleted"] and not was_completed:
            logger.info(f"[daily_log] Protocol completed for {key}")

        self._write()

    def reset_data(self) -> None:
        """Drop every logged day and delete the file."""
        self._log = {}
        if self.path.exists():
            self.path.unlink()
        logger.info("[daily_log] Data reset")

    # ===== Persistence =====

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"[daily_log] Unreadable log {self.path}, starting empty: {exc}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"[daily_log] Unexpected log format in {self.path}, starting empty")
            return {}

        log: Dict[str, Dict[str, Any]] = {}
        for key, entry in data.items():
            if not isinstance(entry, dict):
                continue
            log[key] = {
                "techSeconds": {str(k): int(v) for k, v in (entry.get("techSeconds") or {}).items()},
                "protocolCompleted": bool(entry.get("protocolCompleted", False)),
            }
        return log

    def _write(self) -> None:
        # Temp file plus rename, so an interrupted write never leaves a partial log
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._log, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
