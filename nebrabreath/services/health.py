"""Health export - finalized sessions appended as JSON lines.

Local stand-in for a health-platform adapter: one ``SessionSummary`` per
line, ISO-8601 timestamps, the same payload keys a platform bridge would
receive (startTime, endTime, durationSeconds, techniqueName, techniqueId).
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from ..session.collaborators import HealthExporter, SessionSummary
from ..platform_paths import get_health_export_path

logger = logging.getLogger(__name__)


class JsonlHealthExporter(HealthExporter):
    """Appends finalized sessions to a JSON-lines file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_health_export_path()

    def save_session(self, summary: SessionSummary) -> None:
        """
        Append *summary*.

        Raises:
            OSError: If the export file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(summary.to_dict(), ensure_ascii=False) + "\n")
        logger.info(
            f"[health] Exported {summary.duration_seconds}s of '{summary.technique_id}' to {self.path.name}"
        )

    def read_all(self) -> List[SessionSummary]:
        """All exported sessions, oldest first. Blank or corrupt lines are skipped."""
        if not self.path.exists():
            return []
        sessions: List[SessionSummary] = []
        with open(self.path, 'r', encoding='utf-8') as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    sessions.append(SessionSummary.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError) as exc:
                    logger.warning(f"[health] Skipping line {lineno} of {self.path.name}: {exc}")
        return sessions
