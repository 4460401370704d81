"""
Rate Limiting
Fixed-window request counters kept in Redis so limits hold across instances
"""

import time
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from backend.core.config import settings
from backend.core.logging import get_logger

logger = get_logger(__name__)

# Global Redis client
_client: Optional[Redis] = None


@dataclass
class RateLimitResult:
    """Outcome of a single counter hit"""

    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class RateLimiter:
    """
    Fixed-window counter keyed by scope and client identity.

    Each hit runs INCR and EXPIRE inside one MULTI/EXEC pipeline, so the
    counter and its TTL are created together and concurrent server
    instances share the same window.
    """

    def __init__(
        self,
        client: Redis,
        window_seconds: int = 60,
        prefix: str = "ratelimit",
    ):
        self.client = client
        self.window_seconds = window_seconds
        self.prefix = prefix

    def _key(self, scope: str, identity: str, window: int) -> str:
        return f"{self.prefix}:{scope}:{identity}:{window}"

    async def hit(self, scope: str, identity: str, limit: int) -> RateLimitResult:
        """
        Count one request against the current window

        Args:
            scope: Endpoint family (e.g. "permissions:verify")
            identity: Client identity, usually the remote IP
            limit: Maximum requests allowed per window

        Returns:
            RateLimitResult for this request

        Raises:
            RedisError: If the counter store is unreachable
        """
        now = time.time()
        window = int(now // self.window_seconds)
        key = self._key(scope, identity, window)

        pipe = self.client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, self.window_seconds)
        count, _ = await pipe.execute()

        retry_after = max(1, int((window + 1) * self.window_seconds - now))
        remaining = max(0, limit - count)

        if count > limit:
            logger.warning(f"Rate limit exceeded: {scope} for {identity} ({count}/{limit})")
            return RateLimitResult(allowed=False, limit=limit, remaining=0, retry_after=retry_after)

        return RateLimitResult(allowed=True, limit=limit, remaining=remaining, retry_after=retry_after)


async def init_redis() -> None:
    """Initialize the Redis client used for rate limiting"""
    global _client

    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting disabled, skipping Redis connection")
        return

    logger.info(f"Connecting to Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT}")

    client = Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD,
        db=settings.REDIS_DB,
        decode_responses=True,
    )

    try:
        await client.ping()
    except RedisError as e:
        await client.aclose()
        logger.error(f"Failed to connect to Redis: {e}")
        raise

    _client = client
    logger.info("Redis initialized successfully")


async def close_redis() -> None:
    """Close the Redis client"""
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis connection closed")


def get_rate_limiter() -> Optional[RateLimiter]:
    """
    Get a rate limiter bound to the global Redis client

    Returns:
        RateLimiter, or None when rate limiting is disabled or Redis
        was never initialized
    """
    if not settings.RATE_LIMIT_ENABLED or _client is None:
        return None
    return RateLimiter(_client)
