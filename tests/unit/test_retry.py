import httpx
import pytest

from app.core.exceptions import TransientStoreError, UpstreamError
from app.utils.retry import async_retry, retry_store


class Flaky:
    def __init__(self, failures, exc):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


async def test_async_retry_recovers():
    fn = Flaky(2, httpx.ConnectError("down"))
    assert await async_retry(fn, retries=2, base_delay=0) == "ok"
    assert fn.calls == 3


async def test_async_retry_gives_up():
    fn = Flaky(5, httpx.ReadTimeout("slow"))
    with pytest.raises(httpx.ReadTimeout):
        await async_retry(fn, retries=1, base_delay=0)
    assert fn.calls == 2


async def test_async_retry_ignores_other_errors():
    fn = Flaky(1, ValueError("bad"))
    with pytest.raises(ValueError):
        await async_retry(fn, retries=3, base_delay=0)
    assert fn.calls == 1


async def test_retry_store_recovers_from_blips():
    fn = Flaky(1, TransientStoreError("connection reset"))
    assert await retry_store(fn, retries=2, base_delay=0) == "ok"


async def test_retry_store_surfaces_upstream_error():
    fn = Flaky(10, TransientStoreError("connection reset"))
    with pytest.raises(UpstreamError):
        await retry_store(fn, retries=2, base_delay=0)
    assert fn.calls == 3
