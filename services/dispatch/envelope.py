"""
Worker envelope and result contract.

Input: optional context block, blank line, task text.
Output: the last non-empty stdout line, parsed as JSON.
"""

import json
import re
from typing import Optional

from pydantic import ValidationError

from transport.alexa.schemas import TaskMessage, TaskResult


CONTEXT_OPEN = "[codex-context]"
CONTEXT_CLOSE = "[/codex-context]"
MAX_ERROR_CHARS = 300

# stderr lands in a pushed notification; values after these keys never do.
SECRET_PATTERNS = [
    re.compile(r"(?i)(\b(?:access_token|client_secret|authorization)[\"']?\s*[=:]\s*[\"']?(?:bearer\s+)?)[^\s\"',]+"),
    re.compile(r"(?i)(\bbearer\s+)[^\s\"',]+"),
]


def redact(text: str) -> str:
    """Mask credential values in a line of worker output."""
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(r"\1[redacted]", text)
    return text


def build_envelope(message: TaskMessage) -> str:
    """Render the text written to the worker's stdin."""
    context_lines = []
    if message.intent:
        context_lines.append(f"INTENT={message.intent}")
    if message.access_token:
        context_lines.append(f"ACCESS_TOKEN={message.access_token}")

    if not context_lines:
        return f"{message.task_text}\n"

    block = "\n".join([CONTEXT_OPEN, *context_lines, CONTEXT_CLOSE])
    return f"{block}\n\n{message.task_text}\n"


def parse_result(stdout: str) -> Optional[TaskResult]:
    """TaskResult from the final output line, or None if it is not one."""
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if not lines:
        return None

    try:
        data = json.loads(lines[-1])
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    try:
        return TaskResult.model_validate(data)
    except ValidationError:
        return None


def fallback_result(task_text: str, stderr: str = "", returncode: Optional[int] = None) -> TaskResult:
    """Error result for a run that produced nothing usable."""
    error_lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    if error_lines:
        detail = redact(error_lines[-1])[:MAX_ERROR_CHARS]
        summary = f"Codex failed on {task_text}: {detail}"
    elif returncode:
        summary = f"Codex failed on {task_text} (exit code {returncode})."
    else:
        summary = f"Codex could not report a result for {task_text}."
    return TaskResult(status="error", summary=summary)
