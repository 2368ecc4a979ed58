from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from guard.app.db.base import Base


class SecurityEventLog(Base):
    """Append-only audit row for one reported security event."""

    __tablename__ = "security_events"
    __table_args__ = (
        Index("idx_security_events_identity", "identity_id"),
        Index("idx_security_events_created", "created_at"),
        Index("idx_security_events_name", "event_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_name: Mapped[str] = mapped_column(String(100))
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    identity_id: Mapped[str | None] = mapped_column(String, nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_agent: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
