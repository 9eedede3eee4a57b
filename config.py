"""
Configuration management for the codelexa gateway.

Loads environment variables from .env file and provides typed access to configuration.
Built once at startup and passed into the components that need it.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)


DEFAULT_RUNNER_PATH = str(Path.home() / "bin" / "codex-task-runner.py")
DEFAULT_STATUS_PATH = str(Path.home() / ".codex" / "codelexa-status.json")
DEFAULT_TOKEN_URL = "https://api.amazon.com/auth/o2/token"
DEFAULT_EVENTS_URL = "https://api.amazonalexa.com/v1/proactiveEvents/stages/development"
DEFAULT_CERT_SAN = "echo-api.amazon.com"


@dataclass(frozen=True)
class NotificationCredentials:
    """OAuth client credentials for the proactive events API."""

    client_id: str
    client_secret: str

    def __repr__(self) -> str:
        return f"NotificationCredentials(client_id={self.client_id!r}, client_secret='***')"


@dataclass
class GatewayConfig:
    """Gateway configuration from environment."""

    # HTTP
    port: int = 4090
    environment: str = "development"
    log_level: str = "INFO"

    # Worker
    runner_path: str = DEFAULT_RUNNER_PATH
    runner_interpreter: Optional[str] = "python3"

    # Status history
    status_path: str = DEFAULT_STATUS_PATH

    # Notifications (None = unconfigured)
    credentials: Optional[NotificationCredentials] = None
    skill_id: Optional[str] = None
    notification_locale: str = "en-US"
    token_url: str = DEFAULT_TOKEN_URL
    events_url: str = DEFAULT_EVENTS_URL

    # Request verification
    cert_san: Optional[str] = DEFAULT_CERT_SAN

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """
        Load configuration from environment variables.

        Missing notification credentials produce an unconfigured state
        instead of an error.
        """
        client_id = os.getenv("ALEXA_CLIENT_ID", "")
        client_secret = os.getenv("ALEXA_CLIENT_SECRET", "")
        credentials = None
        if client_id and client_secret:
            credentials = NotificationCredentials(client_id=client_id, client_secret=client_secret)

        interpreter = os.getenv("CODEX_RUNNER_INTERPRETER", "python3")

        return cls(
            port=int(os.getenv("CODELEXA_PORT", "4090")),
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            runner_path=os.getenv("CODEX_RUNNER_PATH", DEFAULT_RUNNER_PATH),
            runner_interpreter=interpreter or None,
            status_path=os.getenv("CODELEXA_STATUS_PATH", DEFAULT_STATUS_PATH),
            credentials=credentials,
            skill_id=os.getenv("ALEXA_SKILL_ID") or None,
            notification_locale=os.getenv("ALEXA_NOTIFICATION_LOCALE", "en-US"),
            token_url=os.getenv("ALEXA_TOKEN_URL", DEFAULT_TOKEN_URL),
            events_url=os.getenv("ALEXA_EVENTS_URL", DEFAULT_EVENTS_URL),
            cert_san=os.getenv("ALEXA_CERT_SAN", DEFAULT_CERT_SAN) or None,
        )

    @property
    def notifications_configured(self) -> bool:
        return self.credentials is not None and bool(self.skill_id)

    @property
    def runner_command(self) -> List[str]:
        """Argument vector used to start the worker."""
        if self.runner_interpreter:
            return [self.runner_interpreter, self.runner_path]
        return [self.runner_path]

    def missing(self) -> List[str]:
        """Names of required environment variables that are not set."""
        missing = []
        if self.credentials is None:
            missing.extend(["ALEXA_CLIENT_ID", "ALEXA_CLIENT_SECRET"])
        if not self.skill_id:
            missing.append("ALEXA_SKILL_ID")
        return missing


if __name__ == "__main__":
    # Test configuration loading
    config = GatewayConfig.from_env()
    print("Configuration loaded:")
    print(f"  Port: {config.port}")
    print(f"  Environment: {config.environment}")
    print(f"  Runner: {' '.join(config.runner_command)}")
    print(f"  Status file: {config.status_path}")
    print(f"  Notifications: {'✓ Configured' if config.notifications_configured else '✗ Missing'}")
    missing = config.missing()
    if missing:
        print(f"\n  Missing: {', '.join(missing)}")
