"""Tests for the secure login and registration flows."""

from unittest.mock import patch

import pytest

from guard.app.core.store import InMemoryStore
from guard.app.exceptions import (
    RateLimitExceededError,
    UpstreamAuthError,
    ValidationError,
    WeakPasswordError,
)
from guard.app.middleware.rate_limit import RateLimitConfig, RateLimiter
from guard.app.services.event_reporter import AuditSink, SecurityEventReporter
from guard.app.services.secure_auth import (
    GENERIC_AUTH_MESSAGE,
    SecureAuthFlow,
    translate_auth_error,
)
from guard.app.services.session_monitor import SecurityStatus, SessionActivityMonitor

STRONG_PASSWORD = "Str0ng!Pass"


class RecordingSink(AuditSink):
    def __init__(self):
        self.records = []

    async def write(self, record):
        self.records.append(record)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def monitor(provider, clock):
    return SessionActivityMonitor(provider, InMemoryStore(), clock=clock)


@pytest.fixture
def limiter(clock):
    return RateLimiter(
        RateLimitConfig(name="auth", max_attempts=5, window_seconds=300),
        backend="memory",
        clock=clock,
    )


@pytest.fixture
def flow(provider, limiter, monitor, sink):
    reporter = SecurityEventReporter(monitor, sink)
    return SecureAuthFlow(provider, limiter, reporter=reporter, monitor=monitor)


class TestSecureLogin:
    """Tests for secure_login."""

    @pytest.mark.asyncio
    async def test_success_forwards_sanitized_email(self, flow, provider):
        identity = await flow.secure_login("  Driver@Fleet.Example ", "secret1")

        assert identity.email == "driver@fleet.example"
        assert provider.calls == [("login", "driver@fleet.example", "secret1")]

    @pytest.mark.asyncio
    async def test_empty_password_never_reaches_provider(self, flow, provider):
        with pytest.raises(ValidationError) as exc_info:
            await flow.secure_login("user@x.io", "")

        assert exc_info.value.message == "Email and password are required"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_invalid_email(self, flow, provider):
        with pytest.raises(ValidationError, match="Invalid email format"):
            await flow.secure_login("not-an-email", "secret1")
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_short_password(self, flow, provider):
        with pytest.raises(ValidationError, match="at least 6 characters"):
            await flow.secure_login("user@x.io", "abc")
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_sixth_attempt_is_rate_limited(self, flow, provider, sink):
        provider.error = Exception("Invalid login credentials")
        for _ in range(5):
            with pytest.raises(UpstreamAuthError):
                await flow.secure_login("user@x.io", "wrong-pass")

        with pytest.raises(RateLimitExceededError) as exc_info:
            await flow.secure_login("user@x.io", "wrong-pass")

        assert len(provider.calls) == 5
        assert "Wait 5 minutes" in exc_info.value.message
        await flow.reporter.flush()
        assert sink.records[-1].event_name == "login_rate_limited"

    @pytest.mark.asyncio
    async def test_rate_limit_key_is_normalized_email(self, flow, provider):
        provider.error = Exception("Invalid login credentials")
        for email in ["User@X.io", "user@x.io ", " USER@x.IO", "user@X.io", "user@x.io"]:
            with pytest.raises(UpstreamAuthError):
                await flow.secure_login(email, "wrong-pass")

        with pytest.raises(RateLimitExceededError):
            await flow.secure_login("user@x.io", "wrong-pass")

    @pytest.mark.asyncio
    async def test_validation_failures_consume_budget(self, flow, provider):
        for _ in range(5):
            with pytest.raises(ValidationError):
                await flow.secure_login("user@x.io", "")

        with pytest.raises(RateLimitExceededError):
            await flow.secure_login("user@x.io", "secret1")
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_success_resets_limiter(self, flow, provider):
        provider.error = Exception("Invalid login credentials")
        for _ in range(4):
            with pytest.raises(UpstreamAuthError):
                await flow.secure_login("user@x.io", "wrong-pass")

        provider.error = None
        await flow.secure_login("user@x.io", "right-pass")

        provider.error = Exception("Invalid login credentials")
        for _ in range(5):
            with pytest.raises(UpstreamAuthError):
                await flow.secure_login("user@x.io", "wrong-pass")

    @pytest.mark.asyncio
    async def test_upstream_error_is_translated_and_chained(self, flow, provider, sink):
        original = Exception("Invalid login credentials")
        provider.error = original

        with pytest.raises(UpstreamAuthError) as exc_info:
            await flow.secure_login("user@x.io", "wrong-pass")

        assert exc_info.value.user_message == "Invalid credentials"
        assert exc_info.value.__cause__ is original

        await flow.reporter.flush()
        failed = [r for r in sink.records if r.event_name == "login_failed"]
        assert failed[0].details == {"email": "user@x.io", "reason": "Exception"}

    @pytest.mark.asyncio
    async def test_success_notifies_monitor(self, flow, monitor):
        await monitor.evaluate()
        assert monitor.status is SecurityStatus.WARNING

        await flow.secure_login("user@x.io", "secret1")

        assert monitor.status is SecurityStatus.SECURE


class TestSecureRegister:
    """Tests for secure_register."""

    @pytest.mark.asyncio
    async def test_success(self, flow, provider):
        identity = await flow.secure_register(" Jane<b> ", "Jane@X.io", STRONG_PASSWORD)

        assert identity.name == "Janeb"
        assert provider.calls == [("register", "Janeb", "jane@x.io", STRONG_PASSWORD)]

    @pytest.mark.asyncio
    async def test_missing_fields(self, flow, provider):
        with pytest.raises(ValidationError, match="All fields are required"):
            await flow.secure_register("", "jane@x.io", STRONG_PASSWORD)
        assert provider.calls == []

    @pytest.mark.parametrize("name", ["J", "J" * 51])
    @pytest.mark.asyncio
    async def test_name_length_bounds(self, flow, provider, name):
        with pytest.raises(ValidationError, match="between 2 and 50"):
            await flow.secure_register(name, "jane@x.io", STRONG_PASSWORD)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_invalid_email(self, flow):
        with pytest.raises(ValidationError, match="Invalid email format"):
            await flow.secure_register("Jane", "jane@", STRONG_PASSWORD)

    @pytest.mark.asyncio
    async def test_weak_password_lists_violations(self, flow, provider):
        with pytest.raises(WeakPasswordError) as exc_info:
            await flow.secure_register("Jane", "jane@x.io", "abc")

        errors = exc_info.value.errors
        assert len(errors) == 4
        assert any("8 characters" in e for e in errors)
        assert any("uppercase" in e for e in errors)
        assert any("number" in e for e in errors)
        assert any("special" in e for e in errors)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_already_registered(self, flow, provider):
        provider.error = Exception("User already registered")

        with pytest.raises(UpstreamAuthError) as exc_info:
            await flow.secure_register("Jane", "jane@x.io", STRONG_PASSWORD)

        assert exc_info.value.user_message == "This email is already registered"

    @pytest.mark.asyncio
    async def test_rate_limited_after_five_attempts(self, flow):
        for _ in range(5):
            with pytest.raises(WeakPasswordError):
                await flow.secure_register("Jane", "jane@x.io", "weak")

        with pytest.raises(RateLimitExceededError):
            await flow.secure_register("Jane", "jane@x.io", STRONG_PASSWORD)


class TestTranslateAuthError:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Invalid login credentials", "Invalid credentials"),
            ("Email not confirmed", "Confirm your email before signing in"),
            ("Too many requests", "Too many attempts. Wait a few minutes"),
            ("User already registered", "This email is already registered"),
        ],
    )
    def test_known_messages(self, raw, expected):
        assert translate_auth_error(Exception(raw)) == expected

    def test_unknown_message_is_generic(self):
        with patch("guard.app.services.secure_auth.settings") as mock_settings:
            mock_settings.debug = False
            assert translate_auth_error(Exception("db exploded")) == GENERIC_AUTH_MESSAGE

    def test_debug_exposes_raw_message(self):
        with patch("guard.app.services.secure_auth.settings") as mock_settings:
            mock_settings.debug = True
            message = translate_auth_error(Exception("db exploded"))
        assert message == f"{GENERIC_AUTH_MESSAGE}: db exploded"
