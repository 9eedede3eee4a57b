"""
Alexa Skill Request Handling

Picks the action for an authenticated request and renders the spoken response.
Handlers never start work themselves: a RunTaskIntent yields a TaskMessage
that the webhook schedules after the response is committed.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .schemas import RequestEnvelope, StatusEntry, TaskMessage

logger = logging.getLogger(__name__)


RUN_TASK_INTENT = "RunTaskIntent"
GET_STATUS_INTENT = "GetStatusIntent"
HELP_INTENT = "AMAZON.HelpIntent"
CANCEL_INTENT = "AMAZON.CancelIntent"
STOP_INTENT = "AMAZON.StopIntent"
TASK_SLOT = "task"

TASK_REPROMPT = "What task should Codex handle?"


def build_response(
    speech: Optional[str] = None,
    reprompt: Optional[str] = None,
    end_session: Optional[bool] = None,
) -> Dict[str, Any]:
    """Alexa response envelope."""
    response: Dict[str, Any] = {}
    if speech is not None:
        response["outputSpeech"] = {"type": "PlainText", "text": speech}
    if reprompt is not None:
        response["reprompt"] = {"outputSpeech": {"type": "PlainText", "text": reprompt}}
    if end_session is not None:
        response["shouldEndSession"] = end_session
    return {"version": "1.0", "response": response}


@dataclass
class SkillOutcome:
    """Spoken response plus the task to dispatch, if any."""
    response: Dict[str, Any]
    task: Optional[TaskMessage] = None


def describe_status(entry: StatusEntry) -> str:
    """Spoken form of a status entry."""
    if entry.summary:
        return entry.summary
    return f"Your last task, {entry.task}, finished with status {entry.status}."


class SkillHandler:
    """
    Routes request envelopes to intent handlers.

    Args:
        latest_status: Returns the newest StatusEntry, or None
    """

    def __init__(self, latest_status: Callable[[], Optional[StatusEntry]]):
        self.latest_status = latest_status
        self._intents: List[Tuple[Tuple[str, ...], Callable[[RequestEnvelope], SkillOutcome]]] = [
            ((RUN_TASK_INTENT,), self.run_task),
            ((GET_STATUS_INTENT,), self.get_status),
            ((HELP_INTENT,), self.help),
            ((CANCEL_INTENT, STOP_INTENT), self.stop),
        ]

    def handle(self, envelope: RequestEnvelope) -> SkillOutcome:
        try:
            return self._route(envelope)
        except Exception as e:
            logger.error(f"Error handled: {e}", exc_info=True)
            return SkillOutcome(build_response(
                "Sorry, I had trouble doing that. Please try again.",
                reprompt="Please try again.",
            ))

    def _route(self, envelope: RequestEnvelope) -> SkillOutcome:
        request_type = envelope.request.type

        if request_type == "LaunchRequest":
            return SkillOutcome(build_response(
                "Codex is ready. Tell me what you need.",
                reprompt=TASK_REPROMPT,
            ))

        if request_type == "SessionEndedRequest":
            return SkillOutcome(build_response())

        if request_type == "IntentRequest" and envelope.request.intent:
            name = envelope.request.intent.name
            for names, handler in self._intents:
                if name in names:
                    return handler(envelope)
            return SkillOutcome(build_response(f"You just triggered {name}."))

        logger.warning(f"Unhandled request type: {request_type}")
        return SkillOutcome(build_response())

    def run_task(self, envelope: RequestEnvelope) -> SkillOutcome:
        task_text = (envelope.slot_value(TASK_SLOT) or "").strip()
        if not task_text:
            return SkillOutcome(build_response(
                "I did not catch the task. Please say it again.",
                reprompt=TASK_REPROMPT,
            ))

        task = TaskMessage(
            task_text=task_text,
            intent=envelope.request.intent.name,
            access_token=envelope.access_token,
        )
        return SkillOutcome(
            build_response("Got it. I'll let you know when Codex finishes.", end_session=True),
            task=task,
        )

    def get_status(self, envelope: RequestEnvelope) -> SkillOutcome:
        latest = self.latest_status()
        if latest is None:
            return SkillOutcome(build_response("I do not have any recent updates yet.", end_session=True))
        return SkillOutcome(build_response(describe_status(latest), end_session=True))

    def help(self, envelope: RequestEnvelope) -> SkillOutcome:
        return SkillOutcome(build_response(
            'Ask Codex to handle a task, for example, "run the nightly deployment".',
            reprompt="What task do you want Codex to run?",
        ))

    def stop(self, envelope: RequestEnvelope) -> SkillOutcome:
        return SkillOutcome(build_response("Goodbye.", end_session=True))
