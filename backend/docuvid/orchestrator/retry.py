"""Bounded exponential-backoff retry around flaky backend calls.

Only exceptions that escape the wrapped call are retried. A backend that
returns a structured ``success=False`` result has made a definitive answer
and that result is handed straight back to the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docuvid.config import settings
from docuvid.services.vertex_client import is_transient_error

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """Retry an async callable up to max_attempts times.

    After the n-th failed attempt the policy waits base_delay * 2**(n-1)
    seconds, so base_delay=2 waits 2s then 4s. The last exception is
    re-raised once attempts are exhausted.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.max_attempts = max_attempts or settings.pipeline.retry_max_attempts
        self.base_delay = (
            settings.pipeline.retry_base_delay if base_delay is None else base_delay
        )
        self.sleep = sleep

    def _retrying(self, retry=retry_if_exception_type(Exception)) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay),
            retry=retry,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )

    async def _call(self, retrying: AsyncRetrying, fn, args, kwargs) -> Any:
        result = None
        async for attempt in retrying:
            with attempt:
                result = await fn(*args, **kwargs)
        return result

    async def run(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Invoke fn(*args, **kwargs) under this policy and return its result."""
        return await self._call(self._retrying(), fn, args, kwargs)

    async def run_transient(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Like run(), but only transient transport failures are retried.

        Any other exception (a missing object, a rejected key) is raised on
        the first attempt without waiting.
        """
        retrying = self._retrying(retry=retry_if_exception(is_transient_error))
        return await self._call(retrying, fn, args, kwargs)


async def with_retry(
    fn: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
    base_delay: float = 2.0,
    sleep: SleepFn = asyncio.sleep,
) -> Any:
    """Functional shorthand for RetryPolicy(max_attempts, base_delay).run(fn)."""
    return await RetryPolicy(max_attempts, base_delay, sleep).run(fn)
