"""Database package for the audit store."""

from guard.app.db.base import Base
from guard.app.db.models import SecurityEventLog
from guard.app.db.session import (
    create_audit_engine,
    create_audit_session_maker,
    init_audit_db,
)

__all__ = [
    "Base",
    "SecurityEventLog",
    "create_audit_engine",
    "create_audit_session_maker",
    "init_audit_db",
]
