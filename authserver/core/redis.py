import redis.asyncio as redis

from authserver.config import settings


def create_redis_client() -> redis.Redis:  # type: ignore[type-arg]
    """
    Build an async redis client from settings.

    The client is long-lived (owned by the rate limiter), so callers are
    responsible for calling `aclose()` on shutdown.
    """
    return redis.from_url(
        str(settings.REDIS_URL),
        encoding="utf-8",
        decode_responses=True,
    )
