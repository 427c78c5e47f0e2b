import time
from types import SimpleNamespace

import pytest

from app.services.ratelimit import LIMITS, RateLimiter, RateLimitResult, get_client_ip


def request_with(headers=None, host="10.0.0.9"):
    return SimpleNamespace(headers=headers or {}, client=SimpleNamespace(host=host))


async def test_disabled_limiter_allows_everything():
    limiter = RateLimiter(None)
    assert not limiter.enabled
    for _ in range(20):
        assert (await limiter.check("signup", "1.2.3.4")).allowed


async def test_sliding_window(fake_redis):
    limiter = RateLimiter(fake_redis)
    limit, _ = LIMITS["signup"]

    results = [await limiter.check("signup", "1.2.3.4") for _ in range(limit + 1)]

    assert [r.allowed for r in results] == [True] * limit + [False]
    assert [r.remaining for r in results[:limit]] == list(range(limit - 1, -1, -1))
    assert "ratelimit:signup:1.2.3.4" in fake_redis.sets
    # other identifiers have their own window
    assert (await limiter.check("signup", "5.6.7.8")).allowed


async def test_old_entries_leave_the_window(fake_redis):
    limiter = RateLimiter(fake_redis)
    limit, window = LIMITS["login"]
    key = "ratelimit:login:1.2.3.4"
    fake_redis.sets[key] = {f"old{i}": time.time() - window - 10 for i in range(limit)}

    result = await limiter.check("login", "1.2.3.4")

    assert result.allowed
    assert result.remaining == limit - 1


async def test_redis_failure_fails_open(broken_redis):
    limiter = RateLimiter(broken_redis)
    result = await limiter.check("chat", "1.2.3.4")
    assert result.allowed
    assert result.limit == LIMITS["chat"][0]


async def test_unknown_limiter(fake_redis):
    with pytest.raises(ValueError):
        await RateLimiter(fake_redis).check("upload", "1.2.3.4")


def test_headers():
    reset_at = int(time.time()) + 120
    blocked = RateLimitResult(allowed=False, limit=3, remaining=0, reset_at=reset_at).headers()
    assert blocked["X-RateLimit-Limit"] == "3"
    assert blocked["X-RateLimit-Remaining"] == "0"
    assert blocked["X-RateLimit-Reset"] == str(reset_at)
    assert 1 <= int(blocked["Retry-After"]) <= 120
    assert "Retry-After" not in RateLimitResult(True, 3, 2, reset_at).headers()


def test_client_ip():
    assert get_client_ip(request_with({"x-forwarded-for": "1.1.1.1, 2.2.2.2"})) == "1.1.1.1"
    assert get_client_ip(request_with({"x-real-ip": " 3.3.3.3 "})) == "3.3.3.3"
    assert get_client_ip(request_with()) == "10.0.0.9"
