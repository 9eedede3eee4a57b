"""Gateway diagnostics exports."""

from .reporter import (
    NOTIFICATIONS_UNCONFIGURED,
    RUNNER_MISSING,
    RUNNER_NOT_EXECUTABLE,
    SKILL_ID_MISSING,
    HealthReporter,
)

__all__ = [
    "HealthReporter",
    "RUNNER_MISSING",
    "RUNNER_NOT_EXECUTABLE",
    "NOTIFICATIONS_UNCONFIGURED",
    "SKILL_ID_MISSING",
]
