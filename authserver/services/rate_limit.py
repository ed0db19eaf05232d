"""
Fixed-window rate limiting.

The limiter is an explicit service: counters live behind a store interface
(in-process memory or redis) and time comes from an injected clock, so tests
control both and a deployment can switch to redis without touching the
protocol handlers.

Identifiers:
- `{client_id}:{operation}` for per-credential limits
- `user:{user_id}` for per-user limits
- `global:{ip}` for per-IP limits
"""

import asyncio
import math
import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as redis
from pydantic import BaseModel

from authserver.config import RateLimitOperation, settings
from authserver.core.logging import get_logger
from authserver.core.redis import create_redis_client
from authserver.models.api_credential import ApiCredentials

logger = get_logger(__name__)

# Entries untouched for this long are dropped by sweep()
IDLE_ENTRY_MS = 3_600_000


class RateLimitPolicy(BaseModel):
    """Limit applied to one identifier."""

    max_requests: int
    window_ms: int
    enabled: bool = True

    @classmethod
    def for_credential(cls, credential: ApiCredentials) -> "RateLimitPolicy":
        return cls(
            max_requests=credential.rate_limit_max_requests,
            window_ms=credential.rate_limit_window_ms,
            enabled=credential.rate_limit_enabled,
        )


class RateLimitResult(BaseModel):
    """Outcome of a check. reset_time_ms is epoch milliseconds."""

    allowed: bool
    remaining: int
    reset_time_ms: int
    limit: int
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        """X-RateLimit-* response headers (Retry-After too when refused)."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_time_ms / 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class WindowState(BaseModel):
    """Counter for the identifier's current window."""

    count: int
    reset_time_ms: int


class RateLimitStore(Protocol):
    """Counter storage used by RateLimiter."""

    async def hit(self, key: str, window_ms: int, now_ms: int) -> WindowState:
        """Atomically count one request in the current window (opening one if needed)."""
        ...

    async def peek(self, key: str, window_ms: int, now_ms: int) -> WindowState | None:
        """Current window without counting, None if there is no live window."""
        ...

    async def tally(self, key: str, success: bool, window_ms: int, now_ms: int) -> None:
        """Record the outcome of a request that already passed check()."""
        ...

    async def reset(self, key: str) -> None: ...

    async def sweep(self, idle_ms: int, now_ms: int) -> int: ...


class _Window:
    __slots__ = ("count", "window_start_ms", "last_request_ms", "successes", "failures")

    def __init__(self, now_ms: int) -> None:
        self.count = 0
        self.window_start_ms = now_ms
        self.last_request_ms = now_ms
        self.successes = 0
        self.failures = 0


class InMemoryRateLimitStore:
    """
    Process-local store.

    Check-and-increment runs under an asyncio.Lock so concurrent requests on
    the same event loop cannot both take the last slot. Counters are not shared
    between worker processes; use RedisRateLimitStore for that.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Window] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _expired(entry: _Window, window_ms: int, now_ms: int) -> bool:
        # The window closes strictly after window_ms has elapsed
        return now_ms > entry.window_start_ms + window_ms

    def _current(self, key: str, window_ms: int, now_ms: int) -> _Window:
        entry = self._entries.get(key)
        if entry is None or self._expired(entry, window_ms, now_ms):
            entry = _Window(now_ms)
            self._entries[key] = entry
        return entry

    async def hit(self, key: str, window_ms: int, now_ms: int) -> WindowState:
        async with self._lock:
            entry = self._current(key, window_ms, now_ms)
            entry.count += 1
            entry.last_request_ms = now_ms
            return WindowState(count=entry.count, reset_time_ms=entry.window_start_ms + window_ms)

    async def peek(self, key: str, window_ms: int, now_ms: int) -> WindowState | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._expired(entry, window_ms, now_ms):
                return None
            return WindowState(count=entry.count, reset_time_ms=entry.window_start_ms + window_ms)

    async def tally(self, key: str, success: bool, window_ms: int, now_ms: int) -> None:
        async with self._lock:
            entry = self._current(key, window_ms, now_ms)
            if success:
                entry.successes += 1
            else:
                entry.failures += 1
            entry.last_request_ms = now_ms

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def sweep(self, idle_ms: int, now_ms: int) -> int:
        async with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if entry.last_request_ms < now_ms - idle_ms
            ]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def outcomes(self, key: str) -> tuple[int, int]:
        """(successes, failures) recorded in the identifier's current window."""
        entry = self._entries.get(key)
        if entry is None:
            return 0, 0
        return entry.successes, entry.failures


class RedisRateLimitStore:
    """
    Redis-backed store shared by every worker.

    INCR is atomic, and the window TTL is set on the first hit so redis expires
    the counter when the window closes.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "rate_limit:") -> None:  # type: ignore[type-arg]
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def hit(self, key: str, window_ms: int, now_ms: int) -> WindowState:
        redis_key = self._key(key)
        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.pttl(redis_key)
        count, ttl = await pipe.execute()

        if ttl is None or ttl < 0:
            # First request in this window
            await self._redis.pexpire(redis_key, window_ms)
            ttl = window_ms

        return WindowState(count=int(count), reset_time_ms=now_ms + int(ttl))

    async def peek(self, key: str, window_ms: int, now_ms: int) -> WindowState | None:
        redis_key = self._key(key)
        pipe = self._redis.pipeline()
        pipe.get(redis_key)
        pipe.pttl(redis_key)
        count, ttl = await pipe.execute()

        if count is None:
            return None
        if ttl is None or ttl < 0:
            ttl = window_ms
        return WindowState(count=int(count), reset_time_ms=now_ms + int(ttl))

    async def tally(self, key: str, success: bool, window_ms: int, now_ms: int) -> None:
        outcome_key = f"{self._key(key)}:outcomes"
        pipe = self._redis.pipeline()
        pipe.hincrby(outcome_key, "success" if success else "failure", 1)
        pipe.pexpire(outcome_key, window_ms)
        await pipe.execute()

    async def reset(self, key: str) -> None:
        await self._redis.delete(self._key(key), f"{self._key(key)}:outcomes")

    async def sweep(self, idle_ms: int, now_ms: int) -> int:
        # Keys carry a TTL, redis evicts them itself
        return 0

    async def aclose(self) -> None:
        await self._redis.aclose()


class RateLimiter:
    """
    Fixed-window limiter.

    check() counts the request and decides; record() only tallies the outcome
    of a request that was already counted, so a request never uses up two
    slots of the allowance.
    """

    def __init__(self, store: RateLimitStore, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _result(self, state: WindowState | None, policy: RateLimitPolicy, now_ms: int) -> RateLimitResult:
        if state is None:
            return RateLimitResult(
                allowed=True,
                remaining=policy.max_requests,
                reset_time_ms=now_ms + policy.window_ms,
                limit=policy.max_requests,
            )
        allowed = state.count <= policy.max_requests
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, policy.max_requests - state.count),
            reset_time_ms=state.reset_time_ms,
            limit=policy.max_requests,
            retry_after=0 if allowed else max(1, math.ceil((state.reset_time_ms - now_ms) / 1000)),
        )

    async def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        """
        Count a request against `identifier` and decide whether it may proceed.

        Args:
            identifier: Rate limit key (see module docstring)
            policy: Limit to enforce; a disabled policy always allows

        Returns:
            RateLimitResult (allowed, remaining, reset time, limit)
        """
        now_ms = self._now_ms()
        if not policy.enabled:
            return self._result(None, policy, now_ms)

        state = await self.store.hit(identifier, policy.window_ms, now_ms)
        result = self._result(state, policy, now_ms)

        if not result.allowed:
            logger.warning(
                "rate_limit_exceeded",
                identifier=identifier,
                count=state.count,
                limit=policy.max_requests,
            )
        return result

    async def record(self, identifier: str, success: bool, policy: RateLimitPolicy) -> None:
        """Tally the outcome of a request that already went through check()."""
        if not policy.enabled:
            return
        await self.store.tally(identifier, success, policy.window_ms, self._now_ms())

    async def status(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Current standing of `identifier` without counting a request."""
        now_ms = self._now_ms()
        state = await self.store.peek(identifier, policy.window_ms, now_ms)
        return self._result(state, policy, now_ms)

    async def reset(self, identifier: str) -> None:
        await self.store.reset(identifier)

    async def sweep(self, idle_ms: int = IDLE_ENTRY_MS) -> int:
        """Drop counters idle for `idle_ms`; returns how many were removed."""
        removed = await self.store.sweep(idle_ms, self._now_ms())
        if removed:
            logger.info("rate_limit_entries_swept", removed=removed)
        return removed

    async def check_credential(
        self, credential: ApiCredentials, operation: str = RateLimitOperation.GENERAL
    ) -> RateLimitResult:
        """Per-credential limit keyed by `{client_id}:{operation}`."""
        return await self.check(
            credential_identifier(credential, operation), RateLimitPolicy.for_credential(credential)
        )

    async def record_credential(
        self,
        credential: ApiCredentials,
        success: bool,
        operation: str = RateLimitOperation.GENERAL,
    ) -> None:
        await self.record(
            credential_identifier(credential, operation),
            success,
            RateLimitPolicy.for_credential(credential),
        )

    async def check_global(self, ip_address: str) -> RateLimitResult:
        """Per-IP limit keyed by `global:{ip}`, for callers outside the OAuth endpoints."""
        policy = RateLimitPolicy(
            max_requests=settings.GLOBAL_RATE_LIMIT_MAX_REQUESTS,
            window_ms=settings.GLOBAL_RATE_LIMIT_WINDOW_MS,
        )
        return await self.check(f"global:{ip_address}", policy)

    async def check_user(self, user_id: str) -> RateLimitResult:
        """Per-user limit keyed by `user:{user_id}`, for callers outside the OAuth endpoints."""
        policy = RateLimitPolicy(
            max_requests=settings.USER_RATE_LIMIT_MAX_REQUESTS,
            window_ms=settings.USER_RATE_LIMIT_WINDOW_MS,
        )
        return await self.check(f"user:{user_id}", policy)


def credential_identifier(credential: ApiCredentials, operation: str) -> str:
    return f"{credential.client_id}:{operation}"


def create_rate_limiter() -> RateLimiter:
    """Build a limiter over the store selected by RATE_LIMIT_BACKEND."""
    store: RateLimitStore
    if settings.RATE_LIMIT_BACKEND == "redis":
        store = RedisRateLimitStore(create_redis_client())
    else:
        store = InMemoryRateLimitStore()
    logger.info("rate_limiter_created", backend=settings.RATE_LIMIT_BACKEND)
    return RateLimiter(store)


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """
    Dependency returning the process-wide limiter.

    Tests override this dependency with a limiter over a fresh store and a
    controllable clock.
    """
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = create_rate_limiter()
    return _rate_limiter


async def sweep_rate_limiter_forever(interval_seconds: float = 300) -> None:
    """Background loop pruning idle in-memory counters; redis expires its own keys."""
    limiter = get_rate_limiter()
    if not isinstance(limiter.store, InMemoryRateLimitStore):
        return
    while True:
        await asyncio.sleep(interval_seconds)
        await limiter.sweep()


async def close_rate_limiter() -> None:
    """Release the limiter's redis connection on shutdown."""
    global _rate_limiter
    if _rate_limiter is not None and isinstance(_rate_limiter.store, RedisRateLimitStore):
        await _rate_limiter.store.aclose()
    _rate_limiter = None
