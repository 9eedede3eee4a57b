"""
FastAPI Application Entry Point

Integrates:
  - Alexa webhook (authenticated skill requests)
  - Gateway diagnostics
  - Middleware for logging & error handling

Run: uvicorn main:app --host 0.0.0.0 --port 4090
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import GatewayConfig
from services.dispatch import TaskDispatcher
from services.health import HealthReporter
from services.status import StatusStore
from transport.alexa import NotificationClient, RequestAuthenticator, SkillHandler
from transport.alexa import router as alexa_router

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: startup and shutdown handlers.
    """
    config: GatewayConfig = app.state.config

    # Startup
    logger.info("=" * 60)
    logger.info("codelexa starting up...")
    logger.info(f"Environment: {config.environment}")
    logger.info(f"Runner: {' '.join(config.runner_command)}")
    logger.info(f"Status history: {config.status_path}")
    missing = config.missing()
    if missing:
        logger.warning(f"Notifications disabled, missing: {', '.join(missing)}")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("codelexa shutting down...")


def create_app(
    config: Optional[GatewayConfig] = None,
    authenticator: Optional[RequestAuthenticator] = None,
    notifier: Optional[NotificationClient] = None,
    store: Optional[StatusStore] = None,
) -> FastAPI:
    """Build the app and wire components into app.state."""
    config = config or GatewayConfig.from_env()
    setup_logging(config.log_level)
    store = store or StatusStore(config.status_path)
    notifier = notifier or NotificationClient(
        credentials=config.credentials,
        skill_id=config.skill_id,
        locale=config.notification_locale,
        token_url=config.token_url,
        events_url=config.events_url,
    )
    authenticator = authenticator or RequestAuthenticator(expected_san=config.cert_san)

    app = FastAPI(
        title="codelexa",
        description="Alexa webhook gateway for Codex tasks",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.store = store
    app.state.authenticator = authenticator
    app.state.dispatcher = TaskDispatcher(config.runner_command, store=store, notifier=notifier)
    app.state.skill = SkillHandler(latest_status=store.latest)
    app.state.health_reporter = HealthReporter(config, store)

    # Middleware for logging
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        logger.debug(f"{request.method} {request.url.path}")
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"Request error: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"},
            )

    app.include_router(alexa_router)

    @app.get("/health/live")
    async def health_live():
        """Liveness probe."""
        return {"status": "alive"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=app.state.config.port,
    )
