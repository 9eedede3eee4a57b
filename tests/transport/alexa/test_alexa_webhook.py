"""
Alexa Webhook Tests

Full HTTP flow: authenticate → route → dispatch → record → notify.

KEY ASSERTION: no unauthenticated request ever reaches the worker.
"""

import json
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from config import GatewayConfig
from conftest import NOW, FakeNotifier, iso
from main import create_app
from services.status import StatusStore
from transport.alexa.security import RequestAuthenticator
from transport.alexa.webhook import request_url


def intent_body(intent="RunTaskIntent", task="deploy service X", token="linked-token"):
    return json.dumps({
        "version": "1.0",
        "context": {"System": {"user": {"userId": "amzn1.ask.account.x", "accessToken": token}}},
        "request": {
            "type": "IntentRequest",
            "requestId": "amzn1.echo-api.request.1",
            "timestamp": iso(NOW),
            "intent": {"name": intent, "slots": {"task": {"name": "task", "value": task}}},
        },
    }).encode()


@pytest.fixture
def gateway(tmp_path, cert_server, runner_script):
    script, capture = runner_script()
    config = GatewayConfig(
        runner_path=str(script),
        runner_interpreter=sys.executable,
        status_path=str(tmp_path / "history" / "status.json"),
    )
    notifier = FakeNotifier()
    authenticator = RequestAuthenticator(
        clock=lambda: NOW,
        expected_san="echo-api.amazon.com",
        transport=cert_server.transport,
    )
    app = create_app(config=config, authenticator=authenticator, notifier=notifier)
    return SimpleNamespace(
        client=TestClient(app),
        app=app,
        notifier=notifier,
        capture=capture,
        store=app.state.store,
        cert_server=cert_server,
    )


class TestAuthenticationGate:
    def test_missing_headers_returns_400(self, gateway, cert_factory):
        body = intent_body()
        headers = cert_factory.headers(body)
        del headers["Signature-Nonce"]

        response = gateway.client.post("/alexa", content=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "missing_headers"
        assert gateway.cert_server.requests == []
        assert not gateway.capture.exists()

    def test_invalid_cert_url_returns_400(self, gateway, cert_factory):
        body = intent_body()
        headers = cert_factory.headers(body, cert_url="https://evil.example.com/echo.api/cert.pem")

        response = gateway.client.post("/alexa", content=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_cert_url"
        assert gateway.cert_server.requests == []

    def test_invalid_signature_returns_401(self, gateway, cert_factory):
        body = intent_body()
        headers = cert_factory.headers(body)

        response = gateway.client.post("/alexa", content=intent_body(task="rm -rf /"), headers=headers)

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "invalid_signature"
        assert not gateway.capture.exists()
        assert gateway.store.entries() == []
        assert gateway.notifier.messages == []

    def test_stale_timestamp_returns_401(self, gateway, cert_factory):
        body = intent_body()
        headers = cert_factory.headers(body, timestamp=iso(NOW - 150.001))

        response = gateway.client.post("/alexa", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "stale_timestamp"
        assert not gateway.capture.exists()

    def test_unexpected_verification_error_returns_401(self, gateway, cert_factory):
        gateway.app.state.authenticator = MagicMock(authenticate=AsyncMock(side_effect=RuntimeError("boom")))
        body = intent_body()

        response = gateway.client.post("/alexa", content=body, headers=cert_factory.headers(body))

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "verification_failed"

    def test_invalid_envelope_after_auth_returns_400(self, gateway, cert_factory):
        body = b'{"version": "1.0"}'
        response = gateway.client.post("/alexa", content=body, headers=cert_factory.headers(body))
        assert response.status_code == 400


class TestDispatchFlow:
    def test_run_task_dispatches_once(self, gateway, cert_factory):
        body = intent_body()

        response = gateway.client.post("/alexa", content=body, headers=cert_factory.headers(body))

        assert response.status_code == 200
        data = response.json()
        assert data["response"]["outputSpeech"]["text"] == "Got it. I'll let you know when Codex finishes."

        envelope = gateway.capture.read_text()
        assert "INTENT=RunTaskIntent" in envelope
        assert "ACCESS_TOKEN=linked-token" in envelope
        assert envelope.rstrip().endswith("deploy service X")

        entries = gateway.store.entries()
        assert len(entries) == 1
        assert entries[0].status == "success"
        assert entries[0].summary == "done"
        assert entries[0].intent == "RunTaskIntent"
        assert gateway.notifier.messages == ["done"]

    def test_enqueue_called_with_task(self, gateway, cert_factory):
        dispatcher = MagicMock(enqueue=AsyncMock())
        gateway.app.state.dispatcher = dispatcher
        body = intent_body(token=None)

        gateway.client.post("/alexa", content=body, headers=cert_factory.headers(body))

        dispatcher.enqueue.assert_awaited_once_with("deploy service X", "RunTaskIntent", None)

    def test_non_task_intent_does_not_dispatch(self, gateway, cert_factory):
        dispatcher = MagicMock(enqueue=AsyncMock())
        gateway.app.state.dispatcher = dispatcher
        body = intent_body(intent="AMAZON.HelpIntent")

        response = gateway.client.post("/alexa", content=body, headers=cert_factory.headers(body))

        assert response.status_code == 200
        dispatcher.enqueue.assert_not_awaited()

    def test_get_status_reads_history(self, gateway, cert_factory):
        run_body = intent_body()
        gateway.client.post("/alexa", content=run_body, headers=cert_factory.headers(run_body))

        status_body = intent_body(intent="GetStatusIntent")
        response = gateway.client.post(
            "/alexa", content=status_body, headers=cert_factory.headers(status_body, nonce="n2")
        )

        assert response.json()["response"]["outputSpeech"]["text"] == "done"


class TestHealthEndpoint:
    def test_reports_runner_and_history(self, gateway):
        response = gateway.client.get("/alexa/health")

        assert response.status_code == 200
        data = response.json()
        assert data["runner"]["exists"] is True
        assert data["notifications"]["configured"] is False
        assert data["status"] == "degraded"
        assert "notifications_unconfigured" in data["issues"]
        assert data["history"]["count"] == 0

    def test_internal_failure_returns_500(self, gateway):
        gateway.app.state.health_reporter = MagicMock(report=MagicMock(side_effect=RuntimeError("broken")))

        response = gateway.client.get("/alexa/health")

        assert response.status_code == 500
        assert "broken" in response.json()["detail"]

    def test_liveness(self, gateway):
        assert gateway.client.get("/health/live").json() == {"status": "alive"}


def test_status_store_is_shared_with_dispatcher(gateway):
    assert isinstance(gateway.store, StatusStore)
    assert gateway.app.state.dispatcher.store is gateway.store


def scope_request(path, raw_path=None, query=b""):
    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("internal", 4090),
        "path": path,
        "query_string": query,
        "headers": [(b"host", b"skill.example.com")],
    }
    if raw_path is not None:
        scope["raw_path"] = raw_path
    return Request(scope)


class TestRequestUrl:
    def test_encoded_path_kept_as_received(self):
        request = scope_request("/alexa", raw_path=b"/alex%61", query=b"a=%20b")
        assert request_url(request) == "https://skill.example.com/alex%61?a=%20b"

    def test_query_stripped_from_raw_path(self):
        request = scope_request("/alexa", raw_path=b"/alexa?a=1", query=b"a=1")
        assert request_url(request) == "https://skill.example.com/alexa?a=1"

    def test_decoded_path_without_raw_path(self):
        assert request_url(scope_request("/alexa")) == "https://skill.example.com/alexa"
