"""
Exponential backoff for chunk uploads and control calls
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from .cancellation import CancellationToken
from .errors import Cancelled, ExhaustedRetries, UploadError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retry an async operation up to ``max_retries`` extra times.

    Delay before retry ``n`` (0-based) is ``base_delay * 2**n``, stretched
    by a random factor in ``[1, 1 + jitter]``. Only errors flagged
    ``retryable`` are retried.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        jitter: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.jitter = jitter
        self.sleep = sleep

    def delays(self) -> list[float]:
        """Nominal backoff schedule, without jitter"""
        return [self.base_delay * (2 ** attempt) for attempt in range(self.max_retries)]

    def delay_for(self, attempt: int) -> float:
        delay = self.base_delay * (2 ** attempt)
        if self.jitter > 0:
            delay *= 1 + random.uniform(0, self.jitter)
        return delay

    async def _backoff(self, delay: float, token: Optional[CancellationToken]) -> None:
        if token is None:
            await self.sleep(delay)
            return

        sleeper = asyncio.ensure_future(self.sleep(delay))
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()
        token.raise_if_cancelled()

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "operation",
        token: Optional[CancellationToken] = None
    ) -> T:
        attempt = 0
        while True:
            if token is not None:
                token.raise_if_cancelled()

            try:
                return await operation()
            except Cancelled:
                raise
            except UploadError as e:
                if not e.retryable:
                    raise
                last_error = e

            if token is not None and token.cancelled:
                token.raise_if_cancelled()

            if attempt >= self.max_retries:
                logger.error(f"❌ {label} failed after {attempt + 1} attempt(s): {last_error}")
                raise ExhaustedRetries(label, attempt + 1, last_error)

            delay = self.delay_for(attempt)
            logger.warning(
                f"🔄 {label} failed (attempt {attempt + 1}/{self.max_retries + 1}), "
                f"retrying in {delay:.2f}s: {last_error}"
            )
            await self._backoff(delay, token)
            attempt += 1
