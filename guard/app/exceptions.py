"""Custom exceptions for the security guard."""

import math


class GuardException(Exception):
    """Base class for guard exceptions with HTTP status code.

    Every caller-facing failure carries a short human-readable message and
    an error code so it can be rendered without exposing upstream details.
    """
    status_code: int = 500
    error_code: str = "guard_error"

    def __init__(self, message: str = "Security guard error"):
        self.message = message
        super().__init__(message)

    def to_response(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class RateLimitExceededError(GuardException):
    """Raised when a key has exhausted its attempt budget.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: float | None = None,
        action: str = "attempts",
        detail: str | None = None,
    ):
        self.retry_after = retry_after
        if detail is None:
            detail = f"Too many {action}."
            if retry_after:
                minutes = max(1, math.ceil(retry_after / 60))
                unit = "minute" if minutes == 1 else "minutes"
                detail += f" Wait {minutes} {unit} before trying again."
        super().__init__(detail)

    def to_response(self) -> dict:
        response = super().to_response()
        if self.retry_after is not None:
            response["retry_after"] = math.ceil(self.retry_after)
        return response


class ValidationError(GuardException):
    """Raised when externally supplied input fails validation.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    error_code = "validation_error"

    def __init__(self, reason: str = "Invalid input"):
        self.reason = reason
        super().__init__(reason)


class WeakPasswordError(ValidationError):
    """Raised when a password violates one or more strength rules.

    ``errors`` keeps the violated rules in evaluation order.
    """
    error_code = "weak_password"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Weak password: {', '.join(self.errors)}")

    def to_response(self) -> dict:
        response = super().to_response()
        response["errors"] = self.errors
        return response


class UpstreamAuthError(GuardException):
    """Raised when the identity provider rejects a login or registration.

    The provider's error is chained as ``__cause__`` and never shown to the
    caller; ``user_message`` is the translated text.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401
    error_code = "authentication_failed"

    def __init__(self, user_message: str = "Authentication error"):
        self.user_message = user_message
        super().__init__(user_message)
