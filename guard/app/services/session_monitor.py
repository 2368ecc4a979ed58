"""Session liveness monitoring.

Tracks the last user interaction and whether an identity is signed in,
and derives a three-state security status from them. The status is
re-evaluated on a fixed interval by a background task and immediately
whenever the host reports an identity change.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, Optional

from guard.app.core.config import settings
from guard.app.core.logging import get_log_context, get_logger
from guard.app.core.store import KeyValueStore
from guard.app.services.identity import Identity, IdentityProvider

logger = get_logger(__name__)

# Interaction kinds that count as user activity (pointer, key, scroll, touch)
INTERACTION_KINDS = ("mousedown", "keydown", "scroll", "touchstart")

LAST_ACTIVITY_KEY = "lastActivity"


class SecurityStatus(str, Enum):
    """Security status reported to consumers.

    CRITICAL is part of the published taxonomy but no evaluation rule
    produces it.
    """
    SECURE = "secure"
    WARNING = "warning"
    CRITICAL = "critical"


class SessionActivityMonitor:
    """Derives the security status from identity presence and activity.

    Rules, evaluated in order:
    - no authenticated identity: WARNING
    - last activity older than the staleness threshold: WARNING
    - otherwise: SECURE

    A missing activity signal counts as fresh. A signal that cannot be read
    counts as stale.

    Example:
        monitor = SessionActivityMonitor(identity_provider, store)
        await monitor.start()
        await monitor.record_activity("keydown")
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        store: KeyValueStore,
        check_interval: Optional[float] = None,
        staleness_threshold: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the monitor.

        Args:
            identity_provider: Source of the current identity
            store: Persisted store holding the last-activity signal
            check_interval: Seconds between periodic evaluations
            staleness_threshold: Seconds of inactivity before the session is stale
            clock: Source of the current time in seconds
        """
        self.identity_provider = identity_provider
        self.store = store
        self.check_interval = (
            check_interval
            if check_interval is not None
            else settings.session_check_interval_seconds
        )
        self.staleness_threshold = (
            staleness_threshold
            if staleness_threshold is not None
            else settings.session_staleness_hours * 3600
        )
        self._clock = clock

        self._status = SecurityStatus.SECURE
        self._evaluate_lock = asyncio.Lock()

        self._monitor_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._started = False

    @property
    def status(self) -> SecurityStatus:
        """The last computed status."""
        return self._status

    @property
    def running(self) -> bool:
        return self._started

    @property
    def current_identity(self) -> Optional[Identity]:
        try:
            return self.identity_provider.current_identity()
        except Exception as e:
            logger.warning(f"Identity lookup failed: {e}")
            return None

    async def start(self) -> None:
        """Evaluate once and start the periodic evaluation task."""
        if self._started:
            return
        self._shutdown_event.clear()
        await self.evaluate()
        self._monitor_task = asyncio.create_task(self._monitor_loop())
        self._started = True
        logger.debug("SessionActivityMonitor started")

    async def stop(self) -> None:
        """Cancel the periodic task and wait for it to finish."""
        self._shutdown_event.set()

        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        self._started = False
        logger.debug("SessionActivityMonitor stopped")

    async def record_activity(self, kind: str = "mousedown") -> bool:
        """Store "now" as the last-activity instant.

        Args:
            kind: Interaction kind reported by the host

        Returns:
            True if the signal was recorded, False for unrecognised kinds
        """
        if kind not in INTERACTION_KINDS:
            logger.debug(f"Ignoring unrecognised interaction kind '{kind}'")
            return False

        now_ms = int(self._clock() * 1000)
        # Stored without a TTL; a missing signal counts as fresh
        await self.store.set(LAST_ACTIVITY_KEY, str(now_ms))
        return True

    async def last_activity(self) -> Optional[float]:
        """Return the last-activity instant in seconds, or None if never set.

        Raises:
            ValueError: If the stored value is not a number
        """
        raw = await self.store.get(LAST_ACTIVITY_KEY)
        if raw is None:
            return None
        return float(raw) / 1000

    async def evaluate(self) -> SecurityStatus:
        """Recompute the status. Never raises."""
        async with self._evaluate_lock:
            identity = self.current_identity

            if identity is None:
                status = SecurityStatus.WARNING
            else:
                try:
                    last = await self.last_activity()
                except Exception as e:
                    logger.warning(
                        f"Activity signal unreadable, treating session as stale: {e}",
                        extra=get_log_context(identity_id=identity.id),
                    )
                    status = SecurityStatus.WARNING
                else:
                    if last is not None and self._clock() - last > self.staleness_threshold:
                        status = SecurityStatus.WARNING
                    else:
                        status = SecurityStatus.SECURE

            if status is not self._status:
                logger.info(
                    f"Security status changed: {self._status.value} -> {status.value}",
                    extra=get_log_context(
                        identity_id=identity.id if identity else None,
                        status=status.value,
                    ),
                )
            self._status = status
            return status

    async def notify_identity_changed(self) -> SecurityStatus:
        """Re-evaluate right away after a sign-in or sign-out."""
        return await self.evaluate()

    async def _monitor_loop(self) -> None:
        """Background task that periodically evaluates the status."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.check_interval,
                )
            except asyncio.TimeoutError:
                pass

            if not self._shutdown_event.is_set():
                await self.evaluate()
