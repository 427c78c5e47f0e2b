# app/utils/retry.py
import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import httpx

from app.core.exceptions import TransientStoreError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# connection-level failures only; an HTTP error status is never retried here
NETWORK_ERRORS: Tuple[Type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(max_delay, base_delay * 2 ** attempt)


async def async_retry(
        fn: Callable[[], Awaitable[T]],
        *,
        retries: int = 2,
        base_delay: float = 0.4,
        max_delay: float = 2.0,
        retry_on: Tuple[Type[BaseException], ...] = NETWORK_ERRORS,
) -> T:
    """
    Await ``fn()`` up to ``retries + 1`` times with exponential backoff.
    Only ``retry_on`` errors are retried; the last one is re-raised.
    """
    for attempt in range(retries + 1):
        try:
            return await fn()
        except retry_on as e:
            if attempt == retries:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(f"🔁 Attempt {attempt + 1}/{retries + 1} failed ({type(e).__name__}), retrying in {delay}s")
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


async def retry_store(
        fn: Callable[[], Awaitable[T]],
        *,
        retries: int = 2,
        base_delay: float = 0.2,
) -> T:
    """Retry store connectivity blips, then give up with an UpstreamError."""
    try:
        return await async_retry(fn, retries=retries, base_delay=base_delay, retry_on=(TransientStoreError,))
    except TransientStoreError as e:
        raise UpstreamError(f"store unavailable after {retries + 1} attempts: {e.message}") from e
