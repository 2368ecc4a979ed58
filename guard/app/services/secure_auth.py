"""Secure login and registration.

Wraps the identity provider with input sanitisation, the authentication
rate limiter and credential validation. Rate-limit and validation failures
are raised before the provider is called.
"""

from typing import Any, Dict, Optional

from guard.app.core.config import settings
from guard.app.core.logging import get_log_context, get_logger
from guard.app.exceptions import (
    GuardException,
    RateLimitExceededError,
    UpstreamAuthError,
    ValidationError,
    WeakPasswordError,
)
from guard.app.middleware.rate_limit import RateLimiter
from guard.app.services.credentials import (
    PasswordPolicy,
    sanitize_text,
    validate_email,
    validate_password_strength,
)
from guard.app.services.event_reporter import SecurityEventReporter
from guard.app.services.identity import Identity, IdentityProvider
from guard.app.services.session_monitor import SessionActivityMonitor

logger = get_logger(__name__)

GENERIC_AUTH_MESSAGE = "Authentication error"

# Known provider messages and what the user sees instead
AUTH_ERROR_MESSAGES = (
    ("invalid login credentials", "Invalid credentials"),
    ("email not confirmed", "Confirm your email before signing in"),
    ("too many requests", "Too many attempts. Wait a few minutes"),
    ("already registered", "This email is already registered"),
    ("user already exists", "This email is already registered"),
)


def translate_auth_error(error: BaseException) -> str:
    """Map a provider error to a short message safe to show users."""
    text = str(error).lower()
    for needle, message in AUTH_ERROR_MESSAGES:
        if needle in text:
            return message
    if settings.debug:
        return f"{GENERIC_AUTH_MESSAGE}: {error}"
    return GENERIC_AUTH_MESSAGE


class SecureAuthFlow:
    """Guarded login and registration against an identity provider.

    A successful login or registration clears the auth limiter for that
    email, so earlier failed attempts are forgiven.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        auth_limiter: RateLimiter,
        reporter: Optional[SecurityEventReporter] = None,
        monitor: Optional[SessionActivityMonitor] = None,
        policy: Optional[PasswordPolicy] = None,
        name_min_length: Optional[int] = None,
        name_max_length: Optional[int] = None,
    ):
        self.identity_provider = identity_provider
        self.auth_limiter = auth_limiter
        self.reporter = reporter
        self.monitor = monitor
        self.policy = policy or PasswordPolicy.from_settings()
        self.name_min_length = name_min_length or settings.name_min_length
        self.name_max_length = name_max_length or settings.name_max_length

    async def secure_login(self, email: str, password: str) -> Optional[Identity]:
        """Validate and forward a login.

        Raises:
            RateLimitExceededError: Too many attempts for this email
            ValidationError: Missing or malformed input
            UpstreamAuthError: The provider rejected the credentials
        """
        clean_email = sanitize_text(email).lower()

        result = await self.auth_limiter.check(clean_email)
        if not result.allowed:
            self._report("login_rate_limited", {"email": clean_email})
            raise self._rejected(
                "login", RateLimitExceededError(
                    retry_after=result.retry_after, action="login attempts"
                ),
            )

        if not clean_email or not password:
            raise self._rejected(
                "login", ValidationError("Email and password are required")
            )
        if not validate_email(clean_email):
            raise self._rejected(
                "login", ValidationError("Invalid email format")
            )
        if len(password) < self.policy.login_min_length:
            raise self._rejected(
                "login", ValidationError(
                    f"Password must be at least {self.policy.login_min_length} characters long"
                ),
            )

        try:
            identity = await self.identity_provider.login(clean_email, password)
        except Exception as e:
            raise self._upstream_failure("login", clean_email, e) from e

        await self._on_success("login", clean_email)
        return identity

    async def secure_register(
        self, name: str, email: str, password: str
    ) -> Optional[Identity]:
        """Validate and forward a registration.

        Raises:
            RateLimitExceededError: Too many attempts for this email
            ValidationError: Missing or malformed input
            WeakPasswordError: The password violates one or more strength rules
            UpstreamAuthError: The provider rejected the registration
        """
        clean_name = sanitize_text(name)
        clean_email = sanitize_text(email).lower()

        result = await self.auth_limiter.check(clean_email)
        if not result.allowed:
            self._report("registration_rate_limited", {"email": clean_email})
            raise self._rejected(
                "registration", RateLimitExceededError(
                    retry_after=result.retry_after, action="registration attempts"
                ),
            )

        if not clean_name or not clean_email or not password:
            raise self._rejected(
                "registration", ValidationError("All fields are required")
            )
        if not self.name_min_length <= len(clean_name) <= self.name_max_length:
            raise self._rejected(
                "registration", ValidationError(
                    f"Name must be between {self.name_min_length} and "
                    f"{self.name_max_length} characters"
                ),
            )
        if not validate_email(clean_email):
            raise self._rejected(
                "registration", ValidationError("Invalid email format")
            )

        strength = validate_password_strength(password, self.policy)
        if not strength.is_valid:
            raise self._rejected(
                "registration", WeakPasswordError(strength.errors)
            )

        try:
            identity = await self.identity_provider.register(
                clean_name, clean_email, password
            )
        except Exception as e:
            raise self._upstream_failure("registration", clean_email, e) from e

        await self._on_success("registration", clean_email)
        return identity

    async def _on_success(self, flow: str, email: str) -> None:
        await self.auth_limiter.reset(email)
        self._report(f"{flow}_succeeded", {"email": email})
        if self.monitor is not None:
            await self.monitor.notify_identity_changed()
        logger.info(f"Secure {flow} succeeded", extra=get_log_context(event_name=f"{flow}_succeeded"))

    def _rejected(self, flow: str, error: GuardException) -> GuardException:
        logger.info(
            f"Secure {flow} rejected: {error.message}",
            extra=get_log_context(event_name=f"{flow}_rejected", error_code=error.error_code),
        )
        return error

    def _upstream_failure(
        self, flow: str, email: str, error: Exception
    ) -> UpstreamAuthError:
        logger.warning(
            f"Identity provider rejected {flow}: {error}",
            exc_info=error,
            extra=get_log_context(
                event_name=f"{flow}_failed", error_type=type(error).__name__
            ),
        )
        self._report(
            f"{flow}_failed", {"email": email, "reason": type(error).__name__}
        )
        return UpstreamAuthError(translate_auth_error(error))

    def _report(self, event_name: str, details: Dict[str, Any]) -> None:
        if self.reporter is not None:
            self.reporter.report_security_event(event_name, details)
