"""Services package for the guard.

This package provides:
- Credential sanitisation and password strength checks
- Session activity monitoring and the security status
- Fire-and-forget security event reporting to audit sinks
- Secure login and registration flows
- The guard context that wires them together
"""

from guard.app.services.credentials import (
    PasswordPolicy,
    PasswordStrengthResult,
    sanitize_for_logging,
    sanitize_text,
    validate_email,
    validate_password_strength,
)
from guard.app.services.event_reporter import (
    AuditSink,
    DatabaseAuditSink,
    FallbackAuditSink,
    HttpAuditSink,
    LoggingAuditSink,
    SecurityEventRecord,
    SecurityEventReporter,
    create_audit_sink,
)
from guard.app.services.guard_context import SecurityGuardContext, create_guard_context
from guard.app.services.identity import Identity, IdentityProvider
from guard.app.services.secure_auth import SecureAuthFlow, translate_auth_error
from guard.app.services.session_monitor import SecurityStatus, SessionActivityMonitor

__all__ = [
    # Credentials
    "PasswordPolicy",
    "PasswordStrengthResult",
    "sanitize_for_logging",
    "sanitize_text",
    "validate_email",
    "validate_password_strength",
    # Event reporting
    "AuditSink",
    "DatabaseAuditSink",
    "FallbackAuditSink",
    "HttpAuditSink",
    "LoggingAuditSink",
    "SecurityEventRecord",
    "SecurityEventReporter",
    "create_audit_sink",
    # Context
    "SecurityGuardContext",
    "create_guard_context",
    # Identity
    "Identity",
    "IdentityProvider",
    # Auth
    "SecureAuthFlow",
    "translate_auth_error",
    # Monitoring
    "SecurityStatus",
    "SessionActivityMonitor",
]
