"""Tests for the webhook server."""
import time
from dataclasses import replace
from types import MappingProxyType

import httpx
import pytest
from fastapi.testclient import TestClient

from portalbot.config import AppConfig
from portalbot.context import AppContext
from portalbot.portal.models import UserRecord
from portalbot.reference.directory import ReferenceData
from portalbot.server.app import create_app
from portalbot.server.middleware.logging import sanitize_dict
from tests.conftest import FakeLoginClient, FakeTransport

ASHA = UserRecord(username="jh.ran.asha", name="asha devi", mobile_no="9000000001", subscriber_id="12345")


def portal_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/subapis/subpassreset":
        return httpx.Response(200, json={"STATUS": "OK"})
    return httpx.Response(404)


class Harness:
    """Builds contexts with fakes and remembers the chat transport."""

    def __init__(self) -> None:
        self.transport = FakeTransport()
        self.context: AppContext = None  # type: ignore[assignment]

    def __call__(self, config: AppConfig) -> AppContext:
        self.context = AppContext(
            config,
            self.transport,
            login_client=FakeLoginClient(),
            reference=ReferenceData(users=MappingProxyType({"12345": ASHA})),
            portal_http=httpx.AsyncClient(transport=httpx.MockTransport(portal_handler)),
            started_at=time.time() - 5,
        )
        return self.context


def payload(text: str, **overrides) -> dict:
    body = {
        "sender": "group-1@g.us",
        "chat_id": "group-1@g.us",
        "author": "op-1@c.us",
        "text": text,
        "timestamp": time.time(),
    }
    body.update(overrides)
    return body


def wait_for(condition, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest.fixture
def client(app_config: AppConfig, harness: Harness):
    app = create_app(app_config, context_factory=harness)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def secret_client(app_config: AppConfig, harness: Harness):
    config = replace(app_config, chat=replace(app_config.chat, secret="bridge-secret"))
    app = create_app(config, context_factory=harness)
    with TestClient(app) as c:
        yield c


class TestInbound:
    def test_accepts_message(self, client: TestClient) -> None:
        resp = client.post("/chat/inbound", json=payload("hello"))
        assert resp.status_code == 202
        assert resp.json() == {"status": "dispatched"}

    def test_old_message_ignored(self, client: TestClient) -> None:
        resp = client.post("/chat/inbound", json=payload("12345 reset", timestamp=1.0))
        assert resp.status_code == 202
        assert resp.json() == {"status": "ignored"}

    def test_invalid_payload(self, client: TestClient) -> None:
        resp = client.post("/chat/inbound", json={"text": "hi"})
        assert resp.status_code == 422
        data = resp.json()
        assert data["error"]["code"] == "INVALID_FORMAT"
        assert data["error"]["details"]["validation_errors"]

    def test_id_then_reset_replies_with_password(self, client: TestClient, harness: Harness) -> None:
        assert client.post("/chat/inbound", json=payload("12345")).status_code == 202
        assert client.post("/chat/inbound", json=payload("reset")).status_code == 202

        assert wait_for(lambda: harness.transport.sent)
        chat_id, text = harness.transport.sent[0]
        assert chat_id == "group-1@g.us"
        assert "*Default Password:* asha123" in text
        assert "*Password Reset*, Done ✅" in text


class TestBridgeSecret:
    def test_missing_secret_rejected(self, secret_client: TestClient) -> None:
        resp = secret_client.post("/chat/inbound", json=payload("hello"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "NOT_AUTHORIZED"

    def test_correct_secret_accepted(self, secret_client: TestClient) -> None:
        resp = secret_client.post("/chat/inbound", json=payload("hello"),
                                  headers={"X-Bridge-Secret": "bridge-secret"})
        assert resp.status_code == 202


class TestHealth:
    def test_health_before_login(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["session_fresh"] is False
        assert data["pending_exchanges"] == 0
        assert data["timestamp"].endswith("Z")


class TestLifecycle:
    def test_context_opened_and_closed(self, app_config: AppConfig, harness: Harness) -> None:
        app = create_app(app_config, context_factory=harness)
        with TestClient(app):
            assert harness.transport.entered
            assert harness.context.router is not None
            assert app_config.db_path.exists()
        assert harness.transport.exited
        assert harness.context.router is None


class TestSanitize:
    def test_redacts_secrets(self) -> None:
        data = sanitize_dict({"password": "p", "nested": {"ci_cookie": "c"}, "text": "hi"})
        assert data == {"password": "[REDACTED]", "nested": {"ci_cookie": "[REDACTED]"}, "text": "hi"}
