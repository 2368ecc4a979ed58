"""Sliding-window rate limiting for the guard.

This module provides the attempt limiter used for authentication and for
generic API calls. Supports both in-memory and Redis backends, and a
middleware that guards API requests through the security context.
"""

import asyncio
import bisect
import hashlib
import time
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import redis
import redis.asyncio as aioredis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from guard.app.core.config import settings
from guard.app.core.logging import get_log_context, get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for one limiter instance."""
    name: str
    max_attempts: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

    @classmethod
    def api(cls) -> "RateLimitConfig":
        return cls(
            name="api",
            max_attempts=settings.api_rate_limit_max_attempts,
            window_seconds=settings.api_rate_limit_window_seconds,
        )

    @classmethod
    def auth(cls) -> "RateLimitConfig":
        return cls(
            name="auth",
            max_attempts=settings.auth_rate_limit_max_attempts,
            window_seconds=settings.auth_rate_limit_window_seconds,
        )


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_after: float
    retry_after: Optional[float] = None


@dataclass
class RateLimitKeyState:
    """Attempt instants for one key, oldest first."""
    attempts: List[float] = field(default_factory=list)

    def prune(self, cutoff: float) -> None:
        # Instants are appended in order, so the expired ones form a prefix
        index = bisect.bisect_right(self.attempts, cutoff)
        if index:
            del self.attempts[:index]


class RateLimitBackend(ABC):
    """Abstract base class for rate limit backends."""

    def __init__(self, config: RateLimitConfig, clock: Clock = time.time):
        self.config = config
        self._clock = clock

    @abstractmethod
    async def check(self, key: str) -> RateLimitResult:
        """Record an attempt for key if the window has room.

        Rejected attempts are not recorded.

        Args:
            key: Rate limit key

        Returns:
            RateLimitResult with allowed status and metadata
        """
        pass

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget every recorded attempt for key."""
        pass

    @abstractmethod
    async def cleanup(self) -> int:
        """Drop keys whose attempts have all expired.

        Returns:
            Number of keys removed
        """
        pass

    async def is_allowed(self, key: str) -> bool:
        result = await self.check(key)
        return result.allowed


class InMemoryRateLimiter(RateLimitBackend):
    """In-memory sliding window limiter.

    Each key owns its own lock, so the prune-check-append sequence is atomic
    per key while different keys never wait on each other.

    Memory is bounded two ways:
    - once per window, keys whose attempts have all expired are dropped
    - past ``max_entries`` keys, the least recently used 20% are evicted
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Clock = time.time,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        super().__init__(config, clock)
        self._max_entries = max_entries
        self._storage: OrderedDict[str, RateLimitKeyState] = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_sweep = clock()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _forget(self, key: str) -> None:
        self._storage.pop(key, None)
        self._locks.pop(key, None)

    def _sweep(self, cutoff: float) -> int:
        """Drop keys with no attempts after cutoff; keys in use are skipped."""
        removed = 0
        for key in list(self._locks):
            if self._locks[key].locked():
                continue
            state = self._storage.get(key)
            if state is not None:
                state.prune(cutoff)
                if state.attempts:
                    continue
            self._forget(key)
            removed += 1
        return removed

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if now - self._last_sweep < self.config.window_seconds:
            return
        self._last_sweep = now
        removed = self._sweep(now - self.config.window_seconds)
        if removed:
            logger.debug(f"Dropped {removed} expired keys from limiter '{self.config.name}'")

    def _enforce_lru_limit(self) -> None:
        """Enforce max entries limit using LRU eviction."""
        if len(self._storage) <= self._max_entries:
            return
        remove_count = max(1, int(self._max_entries * 0.2))
        for key in list(self._storage):
            if remove_count == 0:
                break
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                continue
            self._forget(key)
            remove_count -= 1
        logger.warning(
            f"Limiter '{self.config.name}' exceeded {self._max_entries} keys, "
            "evicted least recently used"
        )

    async def check(self, key: str) -> RateLimitResult:
        self._maybe_sweep()
        async with self._lock_for(key):
            now = self._clock()
            window = self.config.window_seconds
            limit = self.config.max_attempts

            state = self._storage.get(key)
            if state is None:
                state = RateLimitKeyState()
                self._storage[key] = state
            else:
                self._storage.move_to_end(key)

            # Attempts aged window_seconds or more no longer count
            state.prune(now - window)

            if len(state.attempts) >= limit:
                retry_after = max(0.0, state.attempts[0] + window - now)
                logger.debug(
                    f"Rate limit reached for limiter '{self.config.name}'",
                    extra=get_log_context(rate_limit_key=key, attempts=len(state.attempts)),
                )
                return RateLimitResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_after=retry_after,
                    retry_after=retry_after,
                )

            state.attempts.append(now)
            self._enforce_lru_limit()
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=limit - len(state.attempts),
                reset_after=state.attempts[0] + window - now,
            )

    async def reset(self, key: str) -> None:
        async with self._lock_for(key):
            self._storage.pop(key, None)

    async def cleanup(self) -> int:
        return self._sweep(self._clock() - self.config.window_seconds)


class RedisRateLimiter(RateLimitBackend):
    """Redis-based distributed sliding window limiter.

    Each key is a sorted set of attempt instants under
    ``{prefix}:{config.name}:{key}``, so two limiters never share storage.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        redis_client: Optional[aioredis.Redis] = None,
        redis_url: Optional[str] = None,
        prefix: Optional[str] = None,
        fail_closed: Optional[bool] = None,
        clock: Clock = time.time,
    ):
        super().__init__(config, clock)
        self._redis = redis_client
        self._redis_url = redis_url or settings.redis_url
        self._prefix = prefix or settings.rate_limit_key_prefix
        self.fail_closed = (
            settings.rate_limit_fail_closed if fail_closed is None else fail_closed
        )

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{self.config.name}:{key}"

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def check(self, key: str) -> RateLimitResult:
        window = self.config.window_seconds
        limit = self.config.max_attempts
        try:
            client = await self._get_redis()
            now = self._clock()
            redis_key = self._key(key)
            member = f"{now:.6f}:{uuid.uuid4().hex}"

            # MULTI/EXEC keeps prune, count and add atomic across processes
            pipe = client.pipeline(transaction=True)
            pipe.zremrangebyscore(redis_key, 0, now - window)
            pipe.zcard(redis_key)
            pipe.zadd(redis_key, {member: now})
            pipe.expire(redis_key, max(1, int(window) + 1))
            results = await pipe.execute()
            current_count = results[1]

            if current_count >= limit:
                # The attempt was rejected, so it must not consume budget
                await client.zrem(redis_key, member)
                return RateLimitResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_after=window,
                    retry_after=window,
                )

            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - current_count - 1),
                reset_after=window,
            )
        except redis.ConnectionError as e:
            logger.error(f"Redis connection failed: {e}")
            return self._handle_redis_failure("connection_error")
        except redis.TimeoutError as e:
            logger.warning(f"Redis timeout: {e}")
            return self._handle_redis_failure("timeout")
        except redis.RedisError as e:
            logger.error(f"Redis error: {e}")
            return self._handle_redis_failure("redis_error")

    def _handle_redis_failure(self, error_type: str) -> RateLimitResult:
        """Apply the configured fail-open/fail-closed policy."""
        window = self.config.window_seconds
        if self.fail_closed:
            logger.warning(
                f"Rate limiting fail-closed triggered due to {error_type}. "
                "Attempt denied."
            )
            return RateLimitResult(
                allowed=False,
                limit=self.config.max_attempts,
                remaining=0,
                reset_after=window,
                retry_after=window,
            )

        logger.warning(
            f"Rate limiting fail-open triggered due to {error_type}. "
            "Attempt allowed without rate limit check."
        )
        return RateLimitResult(
            allowed=True,
            limit=self.config.max_attempts,
            remaining=1,
            reset_after=window,
        )

    async def reset(self, key: str) -> None:
        try:
            client = await self._get_redis()
            await client.delete(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Failed to reset rate limit key: {e}")

    async def cleanup(self) -> int:
        """No-op for Redis (keys expire automatically)."""
        return 0


class RateLimiter:
    """Limiter that selects the appropriate backend.

    Uses the Redis backend when ``rate_limit_backend`` is ``redis``,
    otherwise the in-memory backend.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        backend: Optional[str] = None,
        clock: Clock = time.time,
        redis_client: Optional[aioredis.Redis] = None,
    ):
        """Initialize the limiter.

        Args:
            config: Attempt budget and window for this instance
            backend: 'memory' or 'redis' (None = read settings)
            clock: Source of the current time in seconds
            redis_client: Optional pre-built Redis client
        """
        self.config = config
        backend = backend or settings.rate_limit_backend

        if backend == "redis":
            self._backend: RateLimitBackend = RedisRateLimiter(
                config, redis_client=redis_client, clock=clock
            )
            logger.info(f"Using Redis rate limiter backend for '{config.name}'")
        else:
            self._backend = InMemoryRateLimiter(
                config, clock=clock, max_entries=settings.rate_limit_max_keys
            )
            logger.debug(f"Using in-memory rate limiter backend for '{config.name}'")

    async def is_allowed(self, key: str) -> bool:
        """Record an attempt for key; False when the window is full."""
        return await self._backend.is_allowed(key)

    async def check(self, key: str) -> RateLimitResult:
        return await self._backend.check(key)

    async def reset(self, key: str) -> None:
        """Clear the key's history, e.g. after a successful login."""
        await self._backend.reset(key)

    async def cleanup(self) -> int:
        return await self._backend.cleanup()


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware that rejects API calls the security context rate limits.

    The context is read from ``request.app.state.guard``. Keys combine the
    request path with a hash of the bearer token, or of the client IP.
    """

    def __init__(self, app, exempt_paths: tuple = ()):
        super().__init__(app)
        self.exempt_paths = tuple(exempt_paths)

    def _get_client_key(self, request: Request) -> str:
        """Get rate limit key for the request.

        Raw tokens and addresses are hashed so they are never stored.
        """
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            token = auth[7:].strip()
            digest = hashlib.sha256(token.encode()).hexdigest()[:32]
            return f"{request.url.path}:token:{digest}"

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"
        digest = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
        return f"{request.url.path}:ip:{digest}"

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        guard = request.app.state.guard
        key = self._get_client_key(request)
        if await guard.is_rate_limited(key):
            retry_after = int(guard.api_limiter.config.window_seconds)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": "Rate limit exceeded. Please try again later.",
                    "retry_after": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
