"""
Task dispatcher.

Runs one worker process per recognized command and reports the outcome.

Flow per dispatch:
  STARTED → COLLECTING_OUTPUT → COMPLETED (success | error)
  then StatusStore.record and NotificationClient.notify, each attempted
  regardless of the other.

Rules:
- Never raises to the caller
- One status entry and one notification attempt per dispatch
- No queue, no concurrency cap, no timeout: a hung worker is never killed
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from transport.alexa.schemas import StatusEntry, TaskMessage, TaskResult
from transport.alexa.sender import NotificationError

from .envelope import build_envelope, fallback_result, parse_result

logger = logging.getLogger(__name__)


class DispatchState(str, Enum):
    STARTED = "started"
    COLLECTING_OUTPUT = "collecting_output"
    COMPLETED = "completed"


@dataclass
class DispatchRun:
    """State owned by a single dispatch."""
    message: TaskMessage
    state: DispatchState = DispatchState.STARTED
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    result: Optional[TaskResult] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.result is not None and self.result.status == "success"


def completion_message(entry: StatusEntry) -> str:
    """Text spoken by the notification for a finished dispatch."""
    return entry.summary or f"Codex finished: {entry.task}"


class TaskDispatcher:
    """
    Turns a recognized command into a worker run.

    Args:
        command: Argument vector that starts the worker
        store: Receives one StatusEntry per dispatch (record())
        notifier: Receives one message per dispatch (async notify())
        env: Worker environment; None inherits the gateway's
    """

    def __init__(self, command: Sequence[str], store: Any, notifier: Any, env: Optional[Dict[str, str]] = None):
        self.command: List[str] = list(command)
        self.store = store
        self.notifier = notifier
        self.env = env

    async def enqueue(self, task_text: str, intent: Optional[str] = None, access_token: Optional[str] = None) -> None:
        """Run one task to completion and report it. Never raises."""
        try:
            message = TaskMessage(task_text=task_text, intent=intent, access_token=access_token)
            await self.dispatch(message)
        except Exception as e:
            logger.error(f"Dispatch aborted: {e}", exc_info=True)

    async def dispatch(self, message: TaskMessage) -> DispatchRun:
        run = DispatchRun(message=message)
        logger.info("Dispatch started", extra={"intent": message.intent, "task": message.task_text[:80]})

        try:
            await self._execute(run)
        except Exception as e:
            logger.error(f"Worker run failed: {e}", exc_info=True)
            run.result = fallback_result(message.task_text, stderr=str(e))
        run.state = DispatchState.COMPLETED

        entry = self._to_entry(run)
        logger.info(
            "Dispatch completed",
            extra={"status": entry.status, "returncode": run.returncode, "intent": message.intent},
        )

        try:
            self.store.record(entry)
        except Exception as e:
            logger.error(f"Failed to record status: {e}", exc_info=True)

        try:
            await self.notifier.notify(completion_message(entry))
        except NotificationError as e:
            logger.error(f"Failed to send Alexa notification: {e}")
        except Exception as e:
            logger.error(f"Unexpected notification error: {e}", exc_info=True)

        return run

    async def _execute(self, run: DispatchRun) -> None:
        task_text = run.message.task_text
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            logger.error(f"Could not start runner {self.command}: {e}")
            run.result = fallback_result(task_text, stderr=f"could not start runner: {e}")
            return

        run.state = DispatchState.COLLECTING_OUTPUT
        envelope = build_envelope(run.message).encode("utf-8")
        stdout_bytes, stderr_bytes = await process.communicate(envelope)

        run.returncode = process.returncode
        run.stdout = stdout_bytes.decode(errors="replace")
        run.stderr = stderr_bytes.decode(errors="replace")

        parsed = parse_result(run.stdout)
        if run.returncode != 0 or parsed is None:
            logger.warning(
                f"Runner exited with code {run.returncode}",
                extra={"parsed": parsed is not None, "stderr_length": len(run.stderr)},
            )
            run.result = fallback_result(task_text, stderr=run.stderr, returncode=run.returncode)
            return

        run.result = parsed

    def _to_entry(self, run: DispatchRun) -> StatusEntry:
        result = run.result or fallback_result(run.message.task_text)
        return StatusEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            task=run.message.task_text,
            status=result.status,
            summary=result.summary,
            session=result.session,
            recipients=result.recipients or [],
            intent=run.message.intent,
        )
