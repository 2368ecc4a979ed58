"""Security guard context.

Constructed once at startup and passed to every consumer that needs rate
limiting decisions, the security status or event reporting. Owns the API
and authentication limiters, the session monitor, the event reporter and
the secure auth flow.
"""

import time
from typing import Any, Callable, Optional

from guard.app.core.logging import get_logger
from guard.app.core.store import KeyValueStore, create_store
from guard.app.middleware.rate_limit import RateLimitConfig, RateLimiter
from guard.app.services.credentials import PasswordPolicy
from guard.app.services.event_reporter import (
    AuditSink,
    SecurityEventReporter,
    create_audit_sink,
)
from guard.app.services.identity import Identity, IdentityProvider
from guard.app.services.secure_auth import SecureAuthFlow
from guard.app.services.session_monitor import SecurityStatus, SessionActivityMonitor

logger = get_logger(__name__)


class SecurityGuardContext:
    """Composition root of the security guard.

    Example:
        guard = SecurityGuardContext(identity_provider, LoggingAuditSink(), InMemoryStore())
        async with guard:
            if await guard.is_rate_limited("vehicles:list"):
                ...
            await guard.auth.secure_login(email, password)
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        audit_sink: AuditSink,
        store: KeyValueStore,
        api_limiter: Optional[RateLimiter] = None,
        auth_limiter: Optional[RateLimiter] = None,
        policy: Optional[PasswordPolicy] = None,
        clock: Callable[[], float] = time.time,
        check_interval: Optional[float] = None,
        staleness_threshold: Optional[float] = None,
        client_agent: Optional[str] = None,
    ):
        self.identity_provider = identity_provider
        self.store = store
        self.api_limiter = api_limiter or RateLimiter(RateLimitConfig.api(), clock=clock)
        self.auth_limiter = auth_limiter or RateLimiter(RateLimitConfig.auth(), clock=clock)

        self.monitor = SessionActivityMonitor(
            identity_provider,
            store,
            check_interval=check_interval,
            staleness_threshold=staleness_threshold,
            clock=clock,
        )
        self.reporter = SecurityEventReporter(
            self.monitor, audit_sink, client_agent=client_agent
        )
        self.auth = SecureAuthFlow(
            identity_provider,
            self.auth_limiter,
            reporter=self.reporter,
            monitor=self.monitor,
            policy=policy,
        )

    @property
    def security_status(self) -> SecurityStatus:
        """Last status computed by the session monitor."""
        return self.monitor.status

    @property
    def current_identity(self) -> Optional[Identity]:
        return self.monitor.current_identity

    async def is_rate_limited(self, key: str) -> bool:
        """Record an API attempt for key; True when the caller must back off.

        Keys are scoped to the signed-in identity when there is one.
        """
        identity = self.monitor.current_identity
        scoped_key = f"{identity.id}-{key}" if identity else key
        return not await self.api_limiter.is_allowed(scoped_key)

    def report_security_event(self, event_name: str, details: Optional[Any] = None) -> None:
        self.reporter.report_security_event(event_name, details)

    async def record_activity(self, kind: str = "mousedown") -> bool:
        return await self.monitor.record_activity(kind)

    async def notify_identity_changed(self) -> SecurityStatus:
        return await self.monitor.notify_identity_changed()

    async def secure_login(self, email: str, password: str) -> Optional[Identity]:
        return await self.auth.secure_login(email, password)

    async def secure_register(self, name: str, email: str, password: str) -> Optional[Identity]:
        return await self.auth.secure_register(name, email, password)

    async def start(self) -> None:
        """Prepare the audit sink and start the session monitor."""
        await self.reporter.sink.prepare()
        await self.monitor.start()
        logger.info("Security guard started", extra={"status": self.security_status.value})

    async def stop(self) -> None:
        """Stop the monitor, drain pending events and release resources."""
        try:
            await self.monitor.stop()
            await self.reporter.flush()
        finally:
            try:
                await self.reporter.sink.close()
            finally:
                await self.store.close()
        logger.info("Security guard stopped")

    async def __aenter__(self) -> "SecurityGuardContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def create_guard_context(
    identity_provider: IdentityProvider,
    audit_sink: Optional[AuditSink] = None,
    store: Optional[KeyValueStore] = None,
    **kwargs: Any,
) -> SecurityGuardContext:
    """Build a guard context from settings, filling in configured backends."""
    return SecurityGuardContext(
        identity_provider,
        audit_sink or create_audit_sink(),
        store or create_store(),
        **kwargs,
    )
