"""Core utilities for the guard application."""

from guard.app.core.config import settings
from guard.app.core.logging import get_log_context, get_logger, setup_logging
from guard.app.core.store import (
    InMemoryStore,
    KeyValueStore,
    RedisStore,
    create_store,
)

__all__ = [
    "InMemoryStore",
    "KeyValueStore",
    "RedisStore",
    "create_store",
    "settings",
    "get_log_context",
    "get_logger",
    "setup_logging",
]
