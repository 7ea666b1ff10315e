"""
Redis Clients and Rate Limiting

This module owns the Redis connections used by the service: an async client
for request-time rate limiting and a synchronous client for the RQ job queue.
"""

import time
from typing import Any, Dict, Tuple

import redis as redis_sync
import redis.asyncio as redis
import structlog
from redis.backoff import ExponentialBackoff
from redis.exceptions import (
    BusyLoadingError,
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)
from redis.retry import Retry

from app.core.config import settings
from app.core.exceptions import RateLimitExceededError

# =============================================================================
# Logger Setup
# =============================================================================

logger = structlog.get_logger(__name__)

# =============================================================================
# Redis Client Configuration
# =============================================================================

class RedisConfig:
    """Redis connection configuration and client management."""

    def __init__(self):
        self.connection_kwargs = {
            "socket_timeout": 5,
            "socket_connect_timeout": 5,
            "health_check_interval": 30,
            "max_connections": settings.REDIS_MAX_CONNECTIONS,
            "retry_on_error": [
                BusyLoadingError,
                RedisConnectionError,
                RedisTimeoutError,
            ],
            "retry": Retry(
                backoff=ExponentialBackoff(),
                retries=3,
            ),
        }

    def create_client(self, url: str) -> redis.Redis:
        """Create async Redis client."""
        return redis.Redis.from_url(url, decode_responses=True, **self.connection_kwargs)

    def create_sync_client(self, url: str) -> redis_sync.Redis:
        """Create synchronous Redis client (for RQ)."""
        # RQ expects byte responses; avoid automatic decoding
        return redis_sync.Redis.from_url(url, decode_responses=False, **self.connection_kwargs)


_redis_config = RedisConfig()

# Rate limiting client
redis_client = _redis_config.create_client(settings.REDIS_URL)

# Synchronous client for RQ (uses DB 1)
redis_queue_sync = _redis_config.create_sync_client(settings.REDIS_QUEUE_URL)

# =============================================================================
# Rate Limiting
# =============================================================================

_FIXED_WINDOW_SCRIPT = """
local window_key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local current_time = tonumber(ARGV[3])

local current_count = redis.call('INCR', window_key)
if current_count == 1 then
    redis.call('EXPIRE', window_key, window)
end

if current_count <= limit then
    return {1, 0}
else
    local window_start = math.floor(current_time / window) * window
    return {0, window_start + window - current_time}
end
"""


class RateLimiter:
    """Fixed window counter rate limiting backed by Redis."""

    def __init__(self, client: redis.Redis = redis_client):
        self.client = client

    async def check_fixed_window(self, key: str, limit: int, window: int) -> Tuple[bool, int]:
        """
        Returns:
            (allowed, retry_after_seconds)
        """
        current_time = int(time.time())
        window_key = f"rate_limit:fixed_window:{key}:{current_time // window}"

        try:
            result = await self.client.eval(
                _FIXED_WINDOW_SCRIPT, 1, window_key,
                limit, window, current_time
            )
        except Exception as e:
            # Fail open: an unavailable Redis must not block report intake
            logger.error("Fixed window rate limiting failed", key=key, error=str(e))
            return True, 0

        allowed = bool(result[0])
        retry_after = int(result[1])
        if not allowed:
            logger.debug("Fixed window rate limit exceeded", key=key, retry_after=retry_after)
        return allowed, retry_after


rate_limiter = RateLimiter()


async def check_rate_limit(
    client_id: str,
    resource: str,
    limit: int,
    window: int = 86400,
) -> None:
    """
    Raise ``RateLimitExceededError`` when ``client_id`` exhausted its quota.

    No-op when ``RATE_LIMIT_ENABLED`` is off.
    """
    if not settings.RATE_LIMIT_ENABLED:
        return

    allowed, retry_after = await rate_limiter.check_fixed_window(
        f"{client_id}:{resource}", limit, window
    )
    if not allowed:
        raise RateLimitExceededError(
            f"Rate limit exceeded for {resource}. Try again in {retry_after} seconds.",
            retry_after=retry_after,
        )


# =============================================================================
# Health Checks
# =============================================================================

async def redis_health_check() -> Dict[str, Any]:
    """Check Redis connection health."""
    try:
        await redis_client.ping()
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


async def close_redis_connections() -> None:
    """Close Redis connections gracefully."""
    try:
        await redis_client.aclose()
        redis_queue_sync.close()
        logger.info("Redis connections closed")
    except Exception as e:
        logger.error("Error closing Redis connections", error=str(e))


__all__ = [
    "redis_client",
    "redis_queue_sync",
    "rate_limiter",
    "check_rate_limit",
    "redis_health_check",
    "close_redis_connections",
]
