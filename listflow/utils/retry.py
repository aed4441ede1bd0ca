"""Bounded retry with linear backoff for single-shot operations."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ..errors import PreconditionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    op: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
) -> T:
    """Invoke ``op``, retrying up to ``max_attempts`` additional times.

    Between tries the wrapper sleeps ``base_delay * attempt_number``
    seconds.  When every try fails the last exception is re-raised
    unchanged.  Precondition failures are never retried.

    Args:
        op: Zero-argument coroutine function.
        max_attempts: Number of retries after the first call.
        base_delay: Base delay in seconds for the linear backoff.
    """
    for attempt_number in range(max_attempts):
        try:
            return await op()
        except PreconditionError:
            raise
        except Exception as exc:  # noqa: BLE001
            delay = base_delay * (attempt_number + 1)
            logger.debug(
                "Attempt %d failed (%s); retrying in %.2fs",
                attempt_number + 1, exc, delay,
            )
            await asyncio.sleep(delay)
    return await op()
