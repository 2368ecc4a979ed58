"""Tests for the HTTP surface of the guard."""

import pytest
from fastapi.testclient import TestClient

from guard.app.core.store import InMemoryStore
from guard.app.main import create_app
from guard.app.middleware.rate_limit import RateLimitConfig, RateLimiter
from guard.app.services.event_reporter import AuditSink
from guard.app.services.guard_context import SecurityGuardContext


class RecordingSink(AuditSink):
    def __init__(self):
        self.records = []

    async def write(self, record):
        self.records.append(record)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def guard(provider, sink):
    api_limiter = RateLimiter(
        RateLimitConfig(name="api", max_attempts=5, window_seconds=60), backend="memory"
    )
    return SecurityGuardContext(provider, sink, InMemoryStore(), api_limiter=api_limiter)


@pytest.fixture
def client(guard):
    with TestClient(create_app(guard)) as client:
        yield client


class TestAuthRoutes:
    """Tests for /auth endpoints."""

    def test_login_success(self, client, provider):
        response = client.post(
            "/auth/login", json={"email": " Driver@Fleet.Example", "password": "secret1"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["identity"]["email"] == "driver@fleet.example"
        assert body["status"] == "secure"

    def test_login_missing_password_is_400(self, client, provider):
        response = client.post("/auth/login", json={"email": "user@x.io"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert provider.calls == []

    def test_login_upstream_failure_is_401(self, client, provider):
        provider.error = Exception("Invalid login credentials")

        response = client.post("/auth/login", json={"email": "user@x.io", "password": "wrong-pass"})

        assert response.status_code == 401
        assert response.json() == {
            "error": "authentication_failed",
            "message": "Invalid credentials",
        }

    def test_register_weak_password(self, client):
        response = client.post(
            "/auth/register", json={"name": "Jane", "email": "jane@x.io", "password": "abc"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "weak_password"
        assert len(body["errors"]) == 4

    def test_register_success(self, client):
        response = client.post(
            "/auth/register",
            json={"name": "Jane", "email": "jane@x.io", "password": "Str0ng!Pass"},
        )

        assert response.status_code == 201
        assert response.json()["identity"]["name"] == "Jane"


class TestAuthRateLimit:
    def test_sixth_login_gets_429(self, guard, provider):
        # Large API budget so only the auth limiter is in play
        guard.api_limiter = RateLimiter(
            RateLimitConfig(name="api", max_attempts=100, window_seconds=60), backend="memory"
        )
        provider.error = Exception("Invalid login credentials")

        with TestClient(create_app(guard)) as client:
            for _ in range(5):
                response = client.post(
                    "/auth/login", json={"email": "user@x.io", "password": "wrong-pass"}
                )
                assert response.status_code == 401

            response = client.post(
                "/auth/login", json={"email": "user@x.io", "password": "wrong-pass"}
            )

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert response.headers["Retry-After"] == "300"
        assert len(provider.calls) == 5


class TestSecurityRoutes:
    """Tests for /security endpoints."""

    def test_status_without_identity(self, client):
        response = client.get("/security/status")

        assert response.status_code == 200
        assert response.json() == {
            "status": "warning",
            "identity_id": None,
            "authenticated": False,
        }

    def test_activity_recorded(self, client, guard):
        response = client.post("/security/activity", json={"kind": "keydown"})

        assert response.status_code == 200
        assert response.json()["recorded"] is True

    def test_unknown_activity_kind_ignored(self, client):
        response = client.post("/security/activity", json={"kind": "mousemove"})
        assert response.json()["recorded"] is False

    def test_report_event(self, client, sink):
        response = client.post(
            "/security/events",
            json={"event_name": "suspicious_activity", "details": {"token": "abc"}},
        )

        assert response.status_code == 202
        assert response.json()["accepted"] is True

    def test_events_flushed_on_shutdown(self, guard, sink):
        with TestClient(create_app(guard)) as client:
            client.post("/security/events", json={"event_name": "suspicious_activity"})

        assert [r.event_name for r in sink.records] == ["suspicious_activity"]


class TestApiRateLimitMiddleware:
    def test_rejects_over_budget_with_retry_after(self, client):
        for _ in range(5):
            assert client.get("/security/status").status_code == 200

        response = client.get("/security/status")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["error"] == "rate_limit_exceeded"

    def test_health_is_exempt(self, client):
        for _ in range(10):
            assert client.get("/health").status_code == 200

    def test_budget_is_per_path(self, client):
        for _ in range(5):
            client.get("/security/status")

        assert client.post("/security/activity", json={}).status_code == 200
