"""
Exponential backoff for provider calls, for callers that want it.

Adapters never retry on their own. A caller wraps a call in ``with_retry``
to retry errors the adapter classified as retryable (transport failures,
timeouts, 429/502/503/504). Everything else is raised on the first attempt.
A ``Retry-After`` from the bank overrides the backoff delay.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pix_gateway.providers.errors import ProviderError

logger = logging.getLogger("pix_gateway.retry")

T = TypeVar("T")

MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 30.0


async def with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY,
    **kwargs: Any,
) -> T:
    """
    Execute an async function with exponential backoff on retryable errors.

    Args:
        func: Async callable to execute.
        max_retries: Maximum number of retry attempts (``ProviderConfig.max_retries``
            is the usual source).

    Returns:
        The result of the function call.

    Raises:
        ProviderError: On a non-retryable failure or once retries run out.
    """
    delay = base_delay
    last_error: Optional[ProviderError] = None

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except ProviderError as e:
            last_error = e
            if not e.retryable:
                raise

            if attempt < max_retries:
                sleep_for = min(delay, max_delay)
                if e.retry_after:
                    sleep_for = min(e.retry_after, max_delay)

                logger.warning(
                    "Retryable %s on attempt %d/%d, sleeping %.1fs",
                    e.code,
                    attempt + 1,
                    max_retries + 1,
                    sleep_for,
                )
                await asyncio.sleep(sleep_for)
                delay = min(delay * 2, max_delay)
            else:
                logger.error("Exhausted %d retries for provider call: %s", max_retries, e.code)
                raise

    raise last_error or RuntimeError("with_retry called with negative max_retries")
