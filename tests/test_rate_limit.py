from unittest.mock import AsyncMock

import pytest

from app.core import cache
from app.core.config import settings
from app.core.exceptions import RateLimitExceededError


@pytest.mark.asyncio
async def test_fixed_window_allows_under_limit():
    client = AsyncMock()
    client.eval.return_value = [1, 0]

    allowed, retry_after = await cache.RateLimiter(client).check_fixed_window("user:1:create_report", 5, 60)

    assert allowed is True
    assert retry_after == 0


@pytest.mark.asyncio
async def test_fixed_window_fails_open_when_redis_is_down():
    client = AsyncMock()
    client.eval.side_effect = ConnectionError("redis down")

    allowed, _ = await cache.RateLimiter(client).check_fixed_window("user:1:create_report", 5, 60)

    assert allowed is True


@pytest.mark.asyncio
async def test_check_rate_limit_raises_when_exhausted(monkeypatch):
    client = AsyncMock()
    client.eval.return_value = [0, 42]
    monkeypatch.setattr(cache, "rate_limiter", cache.RateLimiter(client))
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)

    with pytest.raises(RateLimitExceededError) as exc_info:
        await cache.check_rate_limit("user:1", "create_report", limit=5)

    assert exc_info.value.retry_after == 42
    assert exc_info.value.headers["Retry-After"] == "42"


@pytest.mark.asyncio
async def test_check_rate_limit_disabled_skips_redis(monkeypatch):
    client = AsyncMock()
    monkeypatch.setattr(cache, "rate_limiter", cache.RateLimiter(client))
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)

    await cache.check_rate_limit("user:1", "create_report", limit=5)

    client.eval.assert_not_called()
