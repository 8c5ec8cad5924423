import dataclasses

import pytest
import requests

import app
from notifications.config import RelaySettings


@pytest.fixture
def wired(monkeypatch, settings, make_dispatcher, telegram_ok, twilio_ok):
    """Point the app at fully configured channels backed by fakes."""
    dispatcher, http = make_dispatcher(settings, {"api.telegram.org": telegram_ok, "api.twilio.com": twilio_ok})
    monkeypatch.setattr(app, "SETTINGS", settings)
    monkeypatch.setattr(app, "DISPATCHER", dispatcher)
    return http


def test_health_reports_timestamp():
    with app.app.test_client() as client:
        response = client.get("/api/health")
    body = response.get_json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["timestamp"].endswith("Z")


def test_status_lists_services(monkeypatch, make_dispatcher):
    partial = RelaySettings(telegram_bot_token="123:ABC", twilio_account_sid="AC1")
    dispatcher, http = make_dispatcher(partial)
    monkeypatch.setattr(app, "DISPATCHER", dispatcher)

    with app.app.test_client() as client:
        body = client.get("/api/notifications/status").get_json()

    assert body == {
        "success": True,
        "services": {"email": "not configured", "whatsapp": "not configured", "telegram": "configured"},
    }
    assert http.calls == []


@pytest.mark.parametrize(
    "payload",
    [
        {"message": "Hi", "channels": ["telegram"]},
        {"subject": "Test", "channels": ["telegram"]},
        {"subject": "Test", "message": "Hi", "channels": []},
        {"subject": "Test", "message": "Hi"},
    ],
)
def test_incomplete_request_is_rejected_before_dispatch(wired, fake_smtp, payload):
    body = {"recipients": {"telegram": "1", "email": "ops@example.com"}, **payload}
    with app.app.test_client() as client:
        response = client.post("/api/send-notification", json=body)

    assert response.status_code == 400
    assert response.get_json()["success"] is False
    assert wired.calls == []
    assert fake_smtp.instances == []


def test_non_json_body_is_rejected(wired):
    with app.app.test_client() as client:
        response = client.post("/api/send-notification", data="subject=x", content_type="text/plain")
    assert response.status_code == 400


def test_telegram_success_scenario(wired):
    with app.app.test_client() as client:
        response = client.post(
            "/api/send-notification",
            json={"subject": "Test", "message": "Hi", "channels": ["telegram"], "recipients": {"telegram": "777"}},
        )
    body = response.get_json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["results"] == [
        {"channel": "telegram", "status": "success", "detail": "42", "messageId": "42"},
    ]
    assert "Sent via: telegram." in body["message"]


def test_mixed_outcome_keeps_request_order(wired, fake_smtp):
    with app.app.test_client() as client:
        response = client.post(
            "/api/send-notification",
            json={
                "subject": "Test",
                "message": "Hi",
                "channels": ["whatsapp", "email", "telegram"],
                "recipients": {"whatsapp": "+62811", "email": "bad-address"},
            },
        )
    body = response.get_json()
    assert response.status_code == 200
    assert [(r["channel"], r["status"]) for r in body["results"]] == [
        ("whatsapp", "success"),
        ("email", "skipped"),
        ("telegram", "skipped"),
    ]
    assert body["results"][1]["error"]


def test_all_skipped_is_still_200(monkeypatch, make_dispatcher):
    dispatcher, http = make_dispatcher(RelaySettings())
    monkeypatch.setattr(app, "DISPATCHER", dispatcher)
    with app.app.test_client() as client:
        response = client.post(
            "/api/send-notification",
            json={"subject": "Test", "message": "Hi", "channels": ["email", "whatsapp", "telegram"], "recipients": {}},
        )
    body = response.get_json()
    assert response.status_code == 200
    assert body["success"] is True
    assert "No notifications were sent" in body["message"]
    assert http.calls == []


def test_only_failures_return_400(monkeypatch, settings, make_dispatcher):
    dispatcher, _ = make_dispatcher(settings, {"api.telegram.org": requests.ConnectionError("unreachable")})
    monkeypatch.setattr(app, "DISPATCHER", dispatcher)
    with app.app.test_client() as client:
        response = client.post(
            "/api/send-notification",
            json={"subject": "Test", "message": "Hi", "channels": ["telegram"], "recipients": {"telegram": "1"}},
        )
    body = response.get_json()
    assert response.status_code == 400
    assert body["success"] is False
    assert body["results"][0]["status"] == "failed"
    assert body["results"][0]["reason"] == "connectivity"


class _ExplodingDispatcher:
    def dispatch(self, request):
        raise RuntimeError("secret internals")


def test_unhandled_error_hides_detail_in_production(monkeypatch, settings):
    monkeypatch.setattr(app, "SETTINGS", settings)
    monkeypatch.setattr(app, "DISPATCHER", _ExplodingDispatcher())
    with app.app.test_client() as client:
        response = client.post(
            "/api/send-notification",
            json={"subject": "Test", "message": "Hi", "channels": ["email"]},
        )
    body = response.get_json()
    assert response.status_code == 500
    assert body["success"] is False
    assert "error" not in body


def test_unhandled_error_shows_detail_in_development(monkeypatch, settings):
    monkeypatch.setattr(app, "SETTINGS", dataclasses.replace(settings, diagnostics=True))
    monkeypatch.setattr(app, "DISPATCHER", _ExplodingDispatcher())
    with app.app.test_client() as client:
        response = client.post(
            "/api/send-notification",
            json={"subject": "Test", "message": "Hi", "channels": ["email"]},
        )
    assert response.status_code == 500
    assert response.get_json()["error"] == "secret internals"


def test_cors_headers_for_allowed_origin(wired):
    with app.app.test_client() as client:
        allowed = client.get("/api/health", headers={"Origin": "http://localhost:5500"})
        denied = client.get("/api/health", headers={"Origin": "http://evil.example"})
    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5500"
    assert allowed.headers["Access-Control-Allow-Credentials"] == "true"
    assert "Access-Control-Allow-Origin" not in denied.headers


def test_preflight_is_answered(wired):
    with app.app.test_client() as client:
        response = client.options(
            "/api/send-notification",
            headers={"Origin": "http://localhost:8001", "Access-Control-Request-Method": "POST"},
        )
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:8001"
    assert "POST" in response.headers["Access-Control-Allow-Methods"]

