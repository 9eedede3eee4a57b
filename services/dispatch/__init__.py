"""
Task dispatch exports.

Clean interface for the webhook to hand recognized commands to the worker.
"""

from .dispatcher import DispatchRun, DispatchState, TaskDispatcher, completion_message
from .envelope import build_envelope, fallback_result, parse_result

__all__ = [
    "TaskDispatcher",
    "DispatchRun",
    "DispatchState",
    "completion_message",
    "build_envelope",
    "parse_result",
    "fallback_result",
]
