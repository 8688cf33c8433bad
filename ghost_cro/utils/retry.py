"""
Exponential backoff for outbound Admin API calls.

Shopify answers request bursts with 429 + Retry-After and sometimes with a
5xx while a theme is still being copied. Both are worth another attempt;
every other 4xx is final.
"""
import asyncio
import functools
import random
from typing import Callable, Tuple, Type

import httpx

from ghost_cro.utils.logger import log


RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)

NETWORK_ERRORS: Tuple[Type[Exception], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
) -> float:
    """Seconds to wait before ``attempt + 1``; doubles per attempt, capped, plus up to 25% jitter"""
    delay = min(base_delay * 2 ** (attempt - 1), max_delay)
    if jitter:
        delay *= 1 + random.uniform(0, 0.25)
    return delay


def is_retryable_error(error: Exception) -> bool:
    """
    Network failures always retry. Errors exposing a ``status_code``
    (ShopifyAPIError, httpx.HTTPStatusError) retry only on 429/5xx.
    """
    if isinstance(error, NETWORK_ERRORS):
        return True

    status_code = getattr(error, "status_code", None)
    if status_code is None and isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code

    return status_code in RETRYABLE_STATUS_CODES


def retry_async(max_attempts: int = 3, base_delay: float = 1.0, max_delay: float = 30.0):
    """
    Retry an async call on transient failures.

    A ``retry_after`` attribute on the error (Shopify's Retry-After header)
    replaces the computed backoff.

    Usage:
        @retry_async(max_attempts=3)
        async def fetch_orders():
            ...
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if attempt >= max_attempts or not is_retryable_error(e):
                        if attempt > 1:
                            log.error(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise

                    retry_after = getattr(e, "retry_after", None)
                    if retry_after is not None:
                        delay = min(float(retry_after), max_delay)
                    else:
                        delay = calculate_backoff(attempt, base_delay, max_delay)

                    log.warning(f"{func.__name__} attempt {attempt}/{max_attempts} failed ({e}); retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
