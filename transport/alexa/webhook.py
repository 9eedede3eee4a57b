"""
Alexa Webhook Receiver

FastAPI router that authenticates Alexa requests, answers them and
schedules the resulting task. Components come from app.state.

Security invariant: nothing is parsed, answered or dispatched before
RequestAuthenticator.authenticate() succeeds.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status
from pydantic import ValidationError

from .schemas import RequestEnvelope
from .security import AuthError, signed_request_from_headers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alexa", tags=["Alexa Transport"])


def request_url(request: Request) -> str:
    """
    URL covered by the signature.

    Alexa signs the public https URL; TLS is terminated in front of us.
    The path is taken undecoded from the ASGI scope.
    """
    host = request.headers.get("host") or request.url.netloc
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    url = f"https://{host}{path}"
    if request.url.query:
        url += f"?{request.url.query}"
    return url


# ============================================================================
# WEBHOOK RECEIVER
# ============================================================================

@router.post("")
async def alexa_webhook(request: Request, background_tasks: BackgroundTasks) -> Dict[str, Any]:
    """
    Receive an Alexa skill request.

    Flow:
    1. Read raw body
    2. Authenticate (400 missing headers / bad cert URL, 401 otherwise)
    3. Parse the request envelope
    4. Route to a skill handler
    5. Schedule the dispatch after the response is sent

    Returns:
        Alexa response envelope
    """

    # Step 1: Raw body, needed byte-exact for the signature
    body = await request.body()

    # Step 2: Authenticate (security boundary)
    signed = signed_request_from_headers(request.headers, body, request_url(request), request.method)
    try:
        await request.app.state.authenticator.authenticate(signed)
    except AuthError as e:
        logger.warning(f"Alexa request rejected: {e.message}", extra={"reason": e.code})
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": e.code, "message": e.message},
        )
    except Exception as e:
        logger.error(f"Signature verification failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "verification_failed", "message": "Signature verification failed"},
        )

    # Step 3: Parse
    try:
        envelope = RequestEnvelope.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Invalid Alexa payload: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_payload", "message": "Invalid request envelope"},
        )

    logger.info(
        "Alexa request authenticated",
        extra={
            "request_type": envelope.request.type,
            "intent": envelope.request.intent.name if envelope.request.intent else None,
        },
    )

    # Step 4: Route
    outcome = request.app.state.skill.handle(envelope)

    # Step 5: Fire and forget
    if outcome.task is not None:
        task = outcome.task
        background_tasks.add_task(
            request.app.state.dispatcher.enqueue,
            task.task_text,
            task.intent,
            task.access_token,
        )

    return outcome.response


# ============================================================================
# DIAGNOSTICS
# ============================================================================

@router.get("/health")
async def alexa_health(request: Request) -> Dict[str, Any]:
    """Gateway health report."""
    try:
        return request.app.state.health_reporter.report().model_dump()
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
