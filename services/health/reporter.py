"""
Gateway diagnostics.

Read-only snapshot of what the gateway needs to do its job:
- Runner executable present and executable
- Notification credentials configured
- Recent dispatch outcomes

Invariant: reporting never mutates anything and never raises for
configuration gaps. Gaps are reported as issue tags.
"""

import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from config import GatewayConfig
from services.status import StatusStore
from transport.alexa.schemas import (
    HealthReport,
    HistoryStatus,
    NotificationStatus,
    RecentEntry,
    RunnerStatus,
    StatusEntry,
)


RUNNER_MISSING = "runner_missing"
RUNNER_NOT_EXECUTABLE = "runner_not_executable"
NOTIFICATIONS_UNCONFIGURED = "notifications_unconfigured"
SKILL_ID_MISSING = "skill_id_missing"

RECENT_WINDOW = 5


class HealthReporter:
    """Aggregates runner, notification and history state."""

    def __init__(self, config: GatewayConfig, store: StatusStore, clock: Callable[[], float] = time.time):
        self.config = config
        self.store = store
        self.clock = clock

    def check_runner(self) -> RunnerStatus:
        path = Path(self.config.runner_path).expanduser()
        if not path.is_file():
            return RunnerStatus(path=str(path), exists=False, executable=False)

        stat = path.stat()
        return RunnerStatus(
            path=str(path),
            exists=True,
            executable=os.access(path, os.X_OK),
            size_bytes=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
        )

    def check_notifications(self) -> NotificationStatus:
        has_credentials = self.config.credentials is not None
        has_skill_id = bool(self.config.skill_id)
        return NotificationStatus(
            configured=has_credentials and has_skill_id,
            client_credentials=has_credentials,
            skill_id=has_skill_id,
        )

    def check_history(self) -> HistoryStatus:
        entries = self.store.entries()
        return HistoryStatus(
            path=str(self.store.path),
            count=len(entries),
            last_entry_age_seconds=self._age_seconds(entries[0]) if entries else None,
            recent=[_reduce(entry) for entry in entries[:RECENT_WINDOW]],
        )

    def report(self) -> HealthReport:
        runner = self.check_runner()
        notifications = self.check_notifications()
        history = self.check_history()

        issues: List[str] = []
        if not runner.exists:
            issues.append(RUNNER_MISSING)
        elif not runner.executable:
            issues.append(RUNNER_NOT_EXECUTABLE)
        if not notifications.client_credentials:
            issues.append(NOTIFICATIONS_UNCONFIGURED)
        if not notifications.skill_id:
            issues.append(SKILL_ID_MISSING)

        runner_usable = runner.exists and runner.executable
        if not issues:
            status = "ok"
        elif not runner_usable and not notifications.configured:
            status = "error"
        else:
            status = "degraded"

        return HealthReport(
            status=status,
            timestamp=datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat(),
            issues=issues,
            runner=runner,
            notifications=notifications,
            history=history,
        )

    def _age_seconds(self, entry: StatusEntry) -> Optional[float]:
        try:
            recorded = datetime.fromisoformat(entry.timestamp.replace("Z", "+00:00"))
        except ValueError:
            return None
        if recorded.tzinfo is None:
            recorded = recorded.replace(tzinfo=timezone.utc)
        return round(self.clock() - recorded.timestamp(), 3)


def _reduce(entry: StatusEntry) -> RecentEntry:
    return RecentEntry(
        timestamp=entry.timestamp,
        task=entry.task,
        status=entry.status,
        summary=entry.summary,
        intent=entry.intent,
        recipient_count=len(entry.recipients),
    )
