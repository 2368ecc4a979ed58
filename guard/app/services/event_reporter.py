"""Security event reporting with pluggable audit sinks.

Reporting is fire-and-forget: the caller gets control back immediately,
delivery to the sink happens in a background task, and sink failures are
logged here and never reach the caller.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from guard.app.core.config import settings
from guard.app.core.http_client import create_http_client
from guard.app.core.logging import get_log_context, get_logger
from guard.app.db.models import SecurityEventLog
from guard.app.db.session import (
    create_audit_engine,
    create_audit_session_maker,
    init_audit_db,
)
from guard.app.services.credentials import sanitize_for_logging
from guard.app.services.session_monitor import SessionActivityMonitor

logger = get_logger(__name__)


@dataclass
class SecurityEventRecord:
    """One security event as handed to the audit sink."""
    event_name: str
    identity_id: Optional[str]
    timestamp: datetime
    client_agent: str
    details: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_name": self.event_name,
            "details": self.details,
            "identity_id": self.identity_id,
            "timestamp": self.timestamp.isoformat(),
            "client_agent": self.client_agent,
            "session_id": self.session_id,
        }


class AuditSink(ABC):
    """Abstract base class for audit sinks.

    ``write`` may raise; the reporter handles it.
    """

    @abstractmethod
    async def write(self, record: SecurityEventRecord) -> None:
        """Persist one record."""
        pass

    async def prepare(self) -> None:
        """Acquire resources before the first write."""
        return None

    async def close(self) -> None:
        """Release resources."""
        return None


class LoggingAuditSink(AuditSink):
    """Writes records to the application log only."""

    async def write(self, record: SecurityEventRecord) -> None:
        logger.warning(
            f"Security event: {record.event_name}",
            extra=get_log_context(
                identity_id=record.identity_id,
                session_id=record.session_id,
                event_name=record.event_name,
                client_agent=record.client_agent,
                details=record.details,
            ),
        )


class HttpAuditSink(AuditSink):
    """Posts records as JSON to a remote audit endpoint."""

    def __init__(
        self,
        endpoint_url: str,
        client: Optional[httpx.AsyncClient] = None,
        api_key: str = "",
    ):
        if not endpoint_url:
            raise ValueError("HttpAuditSink requires an endpoint URL")
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_http_client()
        return self._client

    async def write(self, record: SecurityEventRecord) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        response = await self._get_client().post(
            self.endpoint_url,
            json={"audit_data": record.to_dict()},
            headers=headers,
        )
        response.raise_for_status()

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class DatabaseAuditSink(AuditSink):
    """Inserts records into the ``security_events`` table."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ):
        self.session_maker = session_maker
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: Optional[str] = None) -> "DatabaseAuditSink":
        engine = create_audit_engine(database_url)
        return cls(create_audit_session_maker(engine), engine=engine)

    async def prepare(self) -> None:
        if self.engine is not None:
            await init_audit_db(self.engine)

    async def write(self, record: SecurityEventRecord) -> None:
        async with self.session_maker() as session:
            session.add(
                SecurityEventLog(
                    event_name=record.event_name,
                    details=record.details or None,
                    identity_id=record.identity_id,
                    session_id=record.session_id,
                    client_agent=record.client_agent,
                    created_at=record.timestamp,
                )
            )
            await session.commit()

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


class FallbackAuditSink(AuditSink):
    """Tries the primary sink and falls back to the secondary on failure."""

    def __init__(self, primary: AuditSink, secondary: AuditSink):
        self.primary = primary
        self.secondary = secondary

    async def prepare(self) -> None:
        await self.primary.prepare()
        await self.secondary.prepare()

    async def write(self, record: SecurityEventRecord) -> None:
        try:
            await self.primary.write(record)
        except Exception as e:
            logger.warning(
                f"Primary audit sink failed, trying fallback: {e}",
                extra=get_log_context(event_name=record.event_name),
            )
            await self.secondary.write(record)

    async def close(self) -> None:
        await self.primary.close()
        await self.secondary.close()


def create_audit_sink(kind: Optional[str] = None) -> AuditSink:
    """Build the sink selected by ``settings.audit_sink``.

    Remote sinks fall back to the log so an outage never loses the event
    entirely.
    """
    kind = kind or settings.audit_sink
    if kind == "http":
        return FallbackAuditSink(
            HttpAuditSink(settings.audit_endpoint_url, api_key=settings.audit_api_key),
            LoggingAuditSink(),
        )
    if kind == "database":
        return FallbackAuditSink(DatabaseAuditSink.from_url(), LoggingAuditSink())
    return LoggingAuditSink()


class SecurityEventReporter:
    """Builds security event records and delivers them to an audit sink.

    Example:
        reporter = SecurityEventReporter(monitor, LoggingAuditSink())
        reporter.report_security_event("login_failed", {"email": "a@b.co"})

        # On shutdown:
        await reporter.flush()
    """

    def __init__(
        self,
        monitor: SessionActivityMonitor,
        sink: AuditSink,
        client_agent: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        self.monitor = monitor
        self.sink = sink
        self.client_agent = client_agent or settings.client_agent
        self.session_id = session_id or uuid.uuid4().hex
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def build_record(
        self, event_name: str, details: Optional[Any] = None
    ) -> SecurityEventRecord:
        if details is None:
            payload: Dict[str, Any] = {}
        elif isinstance(details, dict):
            payload = sanitize_for_logging(details)
        else:
            payload = {"detail": details}

        identity = self.monitor.current_identity
        return SecurityEventRecord(
            event_name=event_name,
            details=payload,
            identity_id=identity.id if identity else None,
            timestamp=datetime.now(timezone.utc),
            client_agent=self.client_agent,
            session_id=self.session_id,
        )

    def report_security_event(
        self, event_name: str, details: Optional[Any] = None
    ) -> None:
        """Emit a security event without waiting for the sink.

        Args:
            event_name: Short event identifier, e.g. "login_rate_limited"
            details: Structured payload; sensitive fields are redacted
        """
        record = self.build_record(event_name, details)
        logger.warning(
            f"Security event reported: {event_name}",
            extra=get_log_context(
                identity_id=record.identity_id,
                session_id=record.session_id,
                event_name=event_name,
                details=record.details,
            ),
        )

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(
                f"No running event loop, {event_name} kept in local log only",
                extra=get_log_context(event_name=event_name),
            )
            return

        task = loop.create_task(self._deliver(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, record: SecurityEventRecord) -> None:
        try:
            await self.sink.write(record)
        except Exception as e:
            # A broken audit sink must never fail the guarded operation
            logger.error(
                f"Audit sink write failed: {e}",
                extra=get_log_context(
                    identity_id=record.identity_id,
                    session_id=record.session_id,
                    event_name=record.event_name,
                ),
            )

    async def flush(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
