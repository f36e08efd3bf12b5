"""
Retry policy for writes that lose an optimistic concurrency race.
"""

import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from accounts_service.core.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_conflict_retry(
    operation: Callable[..., Awaitable[T]],
    attempts: int,
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Await ``operation`` again on ConcurrentModificationError.

    Each attempt re-reads state from storage, so a retry sees the winner's
    writes. The last failure is re-raised unchanged.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(ConcurrentModificationError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await operation(*args, **kwargs)
