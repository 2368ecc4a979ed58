"""Credential hygiene helpers.

Stateless sanitisation of externally supplied identity strings, email
syntax checks and password strength scoring. Thresholds live in
``PasswordPolicy`` and default to the values in settings.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, List, Optional

from guard.app.core.config import settings

MAX_TEXT_LENGTH = 1000

# Characters that can open or close markup
MARKUP_CHARACTERS = "<>"

SENSITIVE_FIELDS = ("password", "token", "apiKey", "api_key", "secret", "key")

REDACTED = "[REDACTED]"

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class PasswordPolicy:
    """Named, overridable password strength thresholds."""
    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True
    special_characters: str = '!@#$%^&*(),.?":{}|<>'
    login_min_length: int = 6

    @classmethod
    def from_settings(cls) -> "PasswordPolicy":
        return cls(
            min_length=settings.password_min_length,
            require_uppercase=settings.password_require_uppercase,
            require_lowercase=settings.password_require_lowercase,
            require_digit=settings.password_require_digit,
            require_special=settings.password_require_special,
            special_characters=settings.password_special_characters,
            login_min_length=settings.login_password_min_length,
        )


@dataclass
class PasswordStrengthResult:
    """Outcome of a strength check, one error per violated rule."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def _is_control(char: str) -> bool:
    return unicodedata.category(char) == "Cc"


def sanitize_text(text: Any) -> str:
    """Clean an externally supplied string before use.

    Removes control characters and markup brackets, trims surrounding
    whitespace and caps the length at MAX_TEXT_LENGTH. Applying it to its
    own output returns the same string.

    Examples:
        >>> sanitize_text("  Jane<script> ")
        'Janescript'
    """
    if not text or not isinstance(text, str):
        return ""

    # Whitespace controls become spaces so words stay separated
    cleaned = "".join(
        " " if char in "\t\n\r\v\f" else char
        for char in text
        if char not in MARKUP_CHARACTERS
    )
    cleaned = "".join(char for char in cleaned if not _is_control(char))
    return cleaned.strip()[:MAX_TEXT_LENGTH].strip()


def validate_email(email: Any) -> bool:
    """Basic syntax check: local part, ``@``, and a dotted domain."""
    if not email or not isinstance(email, str):
        return False
    return bool(_EMAIL_RE.match(email.strip()))


def validate_password_strength(
    password: str, policy: Optional[PasswordPolicy] = None
) -> PasswordStrengthResult:
    """Evaluate every strength rule in order and collect all violations.

    Args:
        password: Candidate password (not sanitised; spaces are legal)
        policy: Thresholds to apply. Defaults to PasswordPolicy.from_settings().

    Returns:
        PasswordStrengthResult; is_valid is True only when no rule failed.
    """
    policy = policy or PasswordPolicy.from_settings()
    password = password or ""
    errors: List[str] = []

    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")

    if policy.require_uppercase and not _UPPER_RE.search(password):
        errors.append("Password must include at least one uppercase letter")

    if policy.require_lowercase and not _LOWER_RE.search(password):
        errors.append("Password must include at least one lowercase letter")

    if policy.require_digit and not _DIGIT_RE.search(password):
        errors.append("Password must include at least one number")

    if policy.require_special and not any(
        c in policy.special_characters for c in password
    ):
        errors.append("Password must include at least one special character")

    return PasswordStrengthResult(is_valid=not errors, errors=errors)


def sanitize_for_logging(data: Any) -> Any:
    """Return a copy of data with sensitive mapping values redacted.

    Mappings nested inside mappings, lists and tuples are redacted too;
    lists and tuples come back as lists. Other values are returned unchanged.
    """
    if isinstance(data, (list, tuple)):
        return [sanitize_for_logging(item) for item in data]
    if not isinstance(data, dict):
        return data

    return {
        key: REDACTED if key in SENSITIVE_FIELDS else sanitize_for_logging(value)
        for key, value in data.items()
    }


def is_valid_uuid(value: Any) -> bool:
    """Check that value is a canonical RFC 4122 UUID string (versions 1-5)."""
    if not isinstance(value, str):
        return False
    return bool(_UUID_RE.match(value))
