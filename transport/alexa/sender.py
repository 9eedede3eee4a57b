"""
Alexa Proactive Notification Sender

Gets a client-credentials token and pushes a message alert to the skill's users.
No retries. No token caching. Callers log and discard failures.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx

from config import DEFAULT_EVENTS_URL, DEFAULT_TOKEN_URL, NotificationCredentials

logger = logging.getLogger(__name__)


NOTIFICATION_SCOPE = "alexa::proactive_events"
EVENT_NAME = "AMAZON.MessageAlert.Activated"
SENDER_NAME = "Codex"
DEFAULT_MESSAGE = "Codex finished a task."
EXPIRY = timedelta(hours=24)


class NotificationError(Exception):
    """Failed to deliver a proactive notification."""
    pass


class CredentialsMissing(NotificationError):
    """Client id, secret or skill id not configured."""
    pass


class TokenRequestFailed(NotificationError):
    """Token endpoint refused or returned no token."""
    pass


class DeliveryFailed(NotificationError):
    """Proactive events endpoint rejected the event."""
    pass


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_event(message: Optional[str], locale: str = "en-US", now: Optional[datetime] = None) -> Dict[str, Any]:
    """Proactive message-alert event carrying message."""
    now = now or datetime.now(timezone.utc)
    return {
        "timestamp": _iso(now),
        "referenceId": str(uuid4()),
        "expiryTime": _iso(now + EXPIRY),
        "event": {
            "name": EVENT_NAME,
            "payload": {
                "state": {
                    "status": "UNREAD",
                    "freshness": "NEW",
                },
                "messageGroup": {
                    "creator": {
                        "name": SENDER_NAME,
                    },
                    "count": 1,
                },
            },
        },
        "localizedAttributes": [
            {
                "locale": locale,
                "message": message or DEFAULT_MESSAGE,
            }
        ],
        "relevantAudience": {
            "type": "Multicast",
            "payload": {},
        },
    }


class NotificationClient:
    """
    Sends proactive notifications through the Alexa events API.

    A fresh token is requested for every notification.
    """

    def __init__(
        self,
        credentials: Optional[NotificationCredentials],
        skill_id: Optional[str],
        locale: str = "en-US",
        token_url: str = DEFAULT_TOKEN_URL,
        events_url: str = DEFAULT_EVENTS_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.credentials = credentials
        self.skill_id = skill_id
        self.locale = locale
        self.token_url = token_url
        self.events_url = events_url
        self._transport = transport
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return self.credentials is not None and bool(self.skill_id)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def fetch_token(self) -> str:
        """
        Client-credentials grant against the token endpoint.

        Raises:
            CredentialsMissing: Client id or secret not configured
            TokenRequestFailed: Non-2xx response or no access_token in it
        """
        if self.credentials is None:
            raise CredentialsMissing("ALEXA_CLIENT_ID and ALEXA_CLIENT_SECRET must be set")

        form = {
            "grant_type": "client_credentials",
            "scope": NOTIFICATION_SCOPE,
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
        }

        try:
            async with self._client() as client:
                response = await client.post(self.token_url, data=form)
        except httpx.HTTPError as e:
            raise TokenRequestFailed(f"Token request failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"Token endpoint error: {response.status_code} - {response.text}",
                extra={"status_code": response.status_code},
            )
            raise TokenRequestFailed(f"Token endpoint returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise TokenRequestFailed("Token endpoint returned invalid JSON") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise TokenRequestFailed(f"No access_token in response: {response.text}")
        return token

    async def push(self, token: str, skill_id: str, message: Optional[str]) -> None:
        """
        POST one message-alert event.

        Raises:
            DeliveryFailed: Non-2xx response or transport error
        """
        event = build_event(message, locale=self.locale)
        headers = {"Authorization": f"Bearer {token}"}

        try:
            async with self._client() as client:
                response = await client.post(self.events_url, json=event, headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryFailed(f"Notification request failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"Notification failed: {response.status_code} - {response.text}",
                extra={"status_code": response.status_code, "skill_id": skill_id},
            )
            raise DeliveryFailed(f"Notification failed: {response.status_code}")

        logger.info(
            "Notification sent",
            extra={"skill_id": skill_id, "reference_id": event["referenceId"]},
        )

    async def notify(self, message: Optional[str]) -> None:
        """Fetch a token and push message. Raises NotificationError."""
        if not self.skill_id:
            raise CredentialsMissing("ALEXA_SKILL_ID must be set")
        token = await self.fetch_token()
        await self.push(token, self.skill_id, message)
