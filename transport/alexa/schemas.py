"""
Alexa Transport Layer - Schemas

PURE DATA MODELS - NO LOGIC
Defines the signed request, the dispatch contract with the worker,
the status history record and the diagnostics snapshot.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# SIGNED REQUEST (INPUT)
# ============================================================================

@dataclass(frozen=True)
class SignedRequest:
    """
    Everything needed to verify one inbound webhook call.

    Header values are None when absent. Request-scoped, never stored.
    """

    signature: Optional[str]
    cert_url: Optional[str]
    timestamp: Optional[str]
    nonce: Optional[str]
    body: bytes
    url: str
    method: str = "POST"


# ============================================================================
# ALEXA REQUEST ENVELOPE (INPUT)
# ============================================================================

class Slot(BaseModel):
    """Intent slot."""
    model_config = ConfigDict(extra="allow")

    name: str
    value: Optional[str] = None


class Intent(BaseModel):
    """Recognized intent."""
    model_config = ConfigDict(extra="allow")

    name: str
    slots: Dict[str, Slot] = Field(default_factory=dict)


class SkillRequest(BaseModel):
    """The `request` object of an Alexa envelope."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    request_id: Optional[str] = Field(None, alias="requestId")
    timestamp: Optional[str] = None
    locale: Optional[str] = None
    intent: Optional[Intent] = None


class RequestEnvelope(BaseModel):
    """
    Alexa request envelope.

    ref: https://developer.amazon.com/en-US/docs/alexa/custom-skills/request-and-response-json-reference.html
    """
    model_config = ConfigDict(extra="allow")

    version: str = "1.0"
    session: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None
    request: SkillRequest

    @property
    def access_token(self) -> Optional[str]:
        """Account-linking token, from context first, then session."""
        system = (self.context or {}).get("System") or {}
        token = (system.get("user") or {}).get("accessToken")
        if token:
            return token
        return ((self.session or {}).get("user") or {}).get("accessToken") or None

    def slot_value(self, name: str) -> Optional[str]:
        if not self.request.intent:
            return None
        slot = self.request.intent.slots.get(name)
        return slot.value if slot else None


# ============================================================================
# WORKER CONTRACT
# ============================================================================

class TaskMessage(BaseModel):
    """One task handed to the worker."""
    model_config = ConfigDict(frozen=True)

    task_text: str
    intent: Optional[str] = None
    access_token: Optional[str] = None


class TaskResult(BaseModel):
    """Result parsed from the worker's final output line."""
    model_config = ConfigDict(extra="ignore")

    status: str
    summary: Optional[str] = None
    session: Optional[str] = None
    recipients: Optional[List[str]] = None


# ============================================================================
# STATUS HISTORY
# ============================================================================

class StatusEntry(BaseModel):
    """One recorded dispatch outcome."""
    model_config = ConfigDict(extra="ignore")

    timestamp: str = Field(..., description="ISO 8601 UTC time the dispatch completed")
    task: str
    status: str
    summary: Optional[str] = None
    session: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    intent: Optional[str] = None


# ============================================================================
# DIAGNOSTICS (OUTPUT)
# ============================================================================

class RunnerStatus(BaseModel):
    path: str
    exists: bool
    executable: bool
    size_bytes: Optional[int] = None
    modified_at: Optional[str] = None


class NotificationStatus(BaseModel):
    configured: bool
    client_credentials: bool
    skill_id: bool


class RecentEntry(BaseModel):
    """StatusEntry reduced for the diagnostics endpoint."""
    timestamp: str
    task: str
    status: str
    summary: Optional[str] = None
    intent: Optional[str] = None
    recipient_count: int = 0


class HistoryStatus(BaseModel):
    path: str
    count: int
    last_entry_age_seconds: Optional[float] = None
    recent: List[RecentEntry] = Field(default_factory=list)


class HealthReport(BaseModel):
    """Point-in-time gateway snapshot."""
    status: Literal["ok", "degraded", "error"]
    timestamp: str
    issues: List[str] = Field(default_factory=list)
    runner: RunnerStatus
    notifications: NotificationStatus
    history: HistoryStatus
