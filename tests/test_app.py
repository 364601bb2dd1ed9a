"""Tests for the Flask application factory and HTTP surface."""

import json
from pathlib import Path
import sys

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from sqlalchemy import create_engine
from structlog.testing import capture_logs

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

import app as app_module  # noqa: E402
from discord_task_bridge import Base, config, security  # noqa: E402
from discord_task_bridge.config import AppSettings  # noqa: E402
from discord_task_bridge.db import create_session_factory, get_engine, get_session_factory, session_scope  # noqa: E402
from discord_task_bridge.discord_client import DiscordClient  # noqa: E402
from discord_task_bridge.interactions import HandlerContext  # noqa: E402
from discord_task_bridge.models import Profile, Task  # noqa: E402

TIMESTAMP = "1700000000"
PRIVATE_KEY = Ed25519PrivateKey.generate()
PUBLIC_KEY_HEX = PRIVATE_KEY.public_key().public_bytes_raw().hex()


@pytest.fixture(autouse=True)
def seed_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DISCORD_PUBLIC_KEY", PUBLIC_KEY_HEX)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "bot-token")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setenv("SERVICE_API_KEY", "service-key")
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    Base.metadata.create_all(get_engine())
    yield
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


@pytest.fixture()
def client():
    return app_module.create_app().test_client()


def _signed_headers(body: bytes) -> dict[str, str]:
    return {
        security.DISCORD_SIGNATURE_HEADER: security.sign_payload(PRIVATE_KEY, TIMESTAMP, body),
        security.DISCORD_TIMESTAMP_HEADER: TIMESTAMP,
    }


def _post_signed(client, payload) -> object:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return client.post(
        "/discord/interactions",
        data=body,
        content_type="application/json",
        headers=_signed_headers(body),
    )


def test_ping_returns_pong(client):
    response = _post_signed(client, {"type": 1})

    assert response.status_code == 200
    assert response.get_json() == {"type": 1}
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_invalid_signature_returns_unauthorised_before_any_work(client, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("interaction must not be handled")

    monkeypatch.setattr(app_module, "handle_interaction", fail)
    body = b'{"type": 2, "data": {"name": "addtask"}}'

    response = client.post(
        "/discord/interactions",
        data=body,
        content_type="application/json",
        headers={
            security.DISCORD_SIGNATURE_HEADER: "00" * 64,
            security.DISCORD_TIMESTAMP_HEADER: TIMESTAMP,
        },
    )

    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_missing_signature_headers_return_unauthorised(client):
    response = client.post("/discord/interactions", data=b'{"type": 1}', content_type="application/json")

    assert response.status_code == 401


def test_signature_covers_exact_body_bytes(client):
    body = b'{"type": 1}'
    headers = _signed_headers(body)

    response = client.post(
        "/discord/interactions",
        data=b'{"type":1}',
        content_type="application/json",
        headers=headers,
    )

    assert response.status_code == 401


def test_other_methods_are_rejected(client):
    response = client.get("/discord/interactions")

    assert response.status_code == 405
    assert response.get_json() == {"error": "Method not allowed"}


def test_preflight_is_answered(client):
    response = client.options("/discord/interactions")

    assert response.status_code == 200
    assert "content-type" in response.headers["Access-Control-Allow-Headers"]


def test_unparseable_json_returns_server_error_with_trace_id(client):
    response = _post_signed(client, b"{not json")

    assert response.status_code == 500
    data = response.get_json()
    assert data["error"]
    assert data["trace_id"]


def test_malformed_envelope_returns_bad_request(client):
    response = _post_signed(client, {"type": "command"})

    assert response.status_code == 400
    assert response.get_json() == {"error": "Malformed interaction"}


def test_signed_command_is_dispatched(client):
    response = _post_signed(
        client,
        {
            "type": 2,
            "member": {"user": {"id": "111", "username": "ada"}},
            "data": {"name": "addtask", "options": [{"name": "content", "type": 3, "value": "Fit seat"}]},
        },
    )

    assert response.status_code == 200
    assert response.get_json() == {"type": 4, "data": {"content": "✅ Task added: Fit seat"}}
    with session_scope() as session:
        assert session.query(Task).one().content == "Fit seat"


def test_service_endpoints_require_bearer_key(client):
    for path in ("/discord/notifications", "/discord/welcome"):
        response = client.post(path, json={"taskId": "x", "eventType": "created"})
        assert response.status_code == 401

        wrong = client.post(path, json={}, headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401


def test_notification_endpoint_validates_body(client):
    response = client.post(
        "/discord/notifications",
        json={"eventType": "created"},
        headers={"Authorization": "Bearer service-key"},
    )

    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields: taskId, eventType"}


def test_welcome_endpoint_rejects_unknown_event(client):
    response = client.post(
        "/discord/welcome",
        json={"type": "something_else"},
        headers={"Authorization": "Bearer service-key"},
    )

    assert response.status_code == 400
    assert response.get_json() == {"error": "Unknown event type"}


def test_rejected_signature_is_logged_without_body(client):
    with capture_logs() as logs:
        client.post("/discord/interactions", data=b'{"type": 1}', content_type="application/json")

    events = [entry["event"] for entry in logs]
    assert "signature_rejected" in events
    assert all("body" not in entry for entry in logs)


SERVICE_HEADERS = {"Authorization": "Bearer service-key"}


def test_link_code_is_issued_and_redeemable(client):
    with session_scope() as session:
        profile = Profile(full_name="Ada Lovelace")
        session.add(profile)
        session.flush()
        profile_id = profile.id

    response = client.post("/discord/link-code", json={"profileId": profile_id}, headers=SERVICE_HEADERS)

    assert response.status_code == 200
    data = response.get_json()
    assert len(data["code"]) == 8
    assert data["expiresAt"]
    with session_scope() as session:
        stored = session.get(Profile, profile_id)
        assert stored.discord_link_code == data["code"]
        assert stored.discord_link_code_expires_at is not None

    linked = _post_signed(
        client,
        {
            "type": 2,
            "member": {"user": {"id": "111", "username": "ada"}},
            "data": {"name": "linkaccount", "options": [{"name": "code", "type": 3, "value": data["code"]}]},
        },
    )
    assert linked.get_json()["data"]["content"].startswith("✅ Account linked successfully!")


def test_link_code_uses_configured_ttl(monkeypatch):
    monkeypatch.setenv("LINK_CODE_TTL_MINUTES", "1")
    config.get_settings.cache_clear()
    client = app_module.create_app().test_client()
    with session_scope() as session:
        profile = Profile(full_name="Ada")
        session.add(profile)
        session.flush()
        profile_id = profile.id

    client.post("/discord/link-code", json={"profileId": profile_id}, headers=SERVICE_HEADERS)

    with session_scope() as session:
        stored = session.get(Profile, profile_id)
        lifetime = stored.discord_link_code_expires_at - stored.created_at
        assert lifetime.total_seconds() < 120


def test_link_code_for_unknown_profile(client):
    response = client.post("/discord/link-code", json={"profileId": "missing"}, headers=SERVICE_HEADERS)

    assert response.status_code == 404


def test_link_code_requires_service_key(client):
    response = client.post("/discord/link-code", json={"profileId": "x"})

    assert response.status_code == 401


def test_unlink_clears_discord_identity(client):
    with session_scope() as session:
        profile = Profile(full_name="Ada", discord_user_id="111", discord_role="role_board")
        session.add(profile)
        session.flush()
        profile_id = profile.id

    response = client.post("/discord/unlink", json={"profileId": profile_id}, headers=SERVICE_HEADERS)

    assert response.status_code == 200
    with session_scope() as session:
        stored = session.get(Profile, profile_id)
        assert stored.discord_user_id is None
        assert stored.discord_role is None

    missing = client.post("/discord/unlink", json={"profileId": "missing"}, headers=SERVICE_HEADERS)
    assert missing.status_code == 404


def test_injected_context_database_is_used(tmp_path):
    injected_url = f"sqlite:///{tmp_path / 'injected.db'}"
    settings = AppSettings.model_validate(
        {
            "DISCORD_PUBLIC_KEY": PUBLIC_KEY_HEX,
            "DISCORD_BOT_TOKEN": "bot-token",
            "DATABASE_URL": injected_url,
        }
    )
    sessions = create_session_factory(injected_url)
    Base.metadata.create_all(create_engine(injected_url))
    context = HandlerContext(
        settings=settings,
        discord=DiscordClient(token="bot-token"),
        sessions=sessions,
    )
    client = app_module.create_app(context=context).test_client()

    response = _post_signed(
        client,
        {
            "type": 2,
            "member": {"user": {"id": "111"}},
            "data": {"name": "addtask", "options": [{"name": "content", "type": 3, "value": "Injected"}]},
        },
    )

    assert response.get_json()["data"]["content"] == "✅ Task added: Injected"
    with session_scope(sessions) as session:
        assert session.query(Task).one().content == "Injected"
    with session_scope() as session:
        assert session.query(Task).count() == 0
