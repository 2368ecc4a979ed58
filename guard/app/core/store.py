"""Persisted key-value store abstraction for the guard.

Holds small session-scoped values such as the last-activity signal.
Provides a pluggable backend system with in-memory and Redis implementations.
Writes are last-write-wins; nothing here is transactional.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import asyncio
import time

import redis.asyncio as aioredis

from guard.app.core.config import settings


@dataclass
class _StoreEntry:
    """Internal store entry with TTL tracking."""

    value: str
    expires_at: float | None = None

    def is_expired(self) -> bool:
        """Check if the entry has expired."""
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at


class KeyValueStore(ABC):
    """Abstract base class for key-value store backends."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Retrieve a value.

        Args:
            key: The key to look up.

        Returns:
            The stored value, or None if not found or expired.
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        """Store a value, overwriting any previous one.

        Args:
            key: The key.
            value: The value to store.
            ttl: Time-to-live in seconds; 0 keeps the value until overwritten.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a value.

        Args:
            key: The key to remove.
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryStore(KeyValueStore):
    """In-memory store implementation with TTL support.

    This is the default backend. Data is lost when the process exits.
    """

    def __init__(self) -> None:
        self._data: dict[str, _StoreEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._data[key]
                return None
            return entry.value

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        async with self._lock:
            expires_at = time.time() + ttl if ttl > 0 else None
            self._data[key] = _StoreEntry(value=str(value), expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)


class RedisStore(KeyValueStore):
    """Redis-based store implementation.

    Keeps the activity signal across process restarts within a session.

    Example:
        >>> store = RedisStore("redis://localhost:6379/0")
        >>> await store.set("lastActivity", "1700000000000")
    """

    def __init__(
        self,
        redis_url: str,
        prefix: str = "fleetguard:store",
        client: aioredis.Redis | None = None,
    ) -> None:
        """Initialize the Redis store.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            prefix: Namespace prepended to every key
            client: Optional pre-built client (used by tests)
        """
        self._redis_url = redis_url
        self._prefix = prefix
        self._redis = client

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def _get_client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def get(self, key: str) -> str | None:
        client = await self._get_client()
        value = await client.get(self._key(key))
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    async def set(self, key: str, value: str, ttl: int = 0) -> None:
        client = await self._get_client()
        if ttl > 0:
            await client.setex(self._key(key), ttl, value)
        else:
            await client.set(self._key(key), value)

    async def delete(self, key: str) -> None:
        client = await self._get_client()
        await client.delete(self._key(key))

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_store(
    backend: str | None = None,
    redis_url: str | None = None,
) -> KeyValueStore:
    """Create a store for the configured backend.

    Args:
        backend: 'memory', 'redis', or None to read settings.activity_store_backend.
        redis_url: Redis connection URL. If not provided, uses settings.redis_url.

    Returns:
        A KeyValueStore instance.
    """
    backend = backend or settings.activity_store_backend
    if backend == "redis":
        return RedisStore(redis_url or settings.redis_url)
    return InMemoryStore()
