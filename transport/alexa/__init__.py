"""Alexa Transport Layer - Module Exports"""

from .schemas import (
    HealthReport,
    RequestEnvelope,
    SignedRequest,
    StatusEntry,
    TaskMessage,
    TaskResult,
)
from .security import (
    AuthError,
    CertFetchFailed,
    CertificateCache,
    InvalidCertUrl,
    InvalidSignature,
    MissingHeaders,
    RequestAuthenticator,
    StaleTimestamp,
)
from .sender import (
    CredentialsMissing,
    DeliveryFailed,
    NotificationClient,
    NotificationError,
    TokenRequestFailed,
)
from .skill import SkillHandler, SkillOutcome
from .webhook import router

__all__ = [
    # Schemas
    "SignedRequest",
    "RequestEnvelope",
    "TaskMessage",
    "TaskResult",
    "StatusEntry",
    "HealthReport",
    # Security
    "RequestAuthenticator",
    "CertificateCache",
    "AuthError",
    "MissingHeaders",
    "InvalidCertUrl",
    "CertFetchFailed",
    "InvalidSignature",
    "StaleTimestamp",
    # Sender
    "NotificationClient",
    "NotificationError",
    "CredentialsMissing",
    "TokenRequestFailed",
    "DeliveryFailed",
    # Skill
    "SkillHandler",
    "SkillOutcome",
    # Router
    "router",
]
