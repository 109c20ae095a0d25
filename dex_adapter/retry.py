"""Fixed-delay retry for ledger queries.

A query that keeps failing stalls the adapter rather than letting it guess a
nonce, so the default policy retries forever. The sleep function is
injectable so tests never block.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx

from dex_adapter.client import LedgerServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (LedgerServiceError, httpx.HTTPError)


@dataclass(frozen=True)
class RetryPolicy:
    """How failed ledger queries are retried.

    Attributes:
        delay: Seconds to wait between attempts.
        jitter: Upper bound of a random extra delay added to each wait.
        max_attempts: Give up and re-raise after this many failures.
            ``None`` retries forever.
        retry_on: Exception types treated as transient.
        sleep: Coroutine used to wait; replaced in tests.
        on_retry: Optional hook called with ``(operation, attempt, error)``
            after each failure, before waiting.
    """

    delay: float = 5.0
    jitter: float = 0.0
    max_attempts: int | None = None
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)
    on_retry: Callable[[str, int, BaseException], None] | None = field(default=None, repr=False)

    def next_delay(self) -> float:
        if self.jitter <= 0:
            return self.delay
        return self.delay + random.uniform(0, self.jitter)

    async def run(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Await ``call()`` until it succeeds, retrying transient failures.

        Args:
            operation: Name used in log records.
            call: Zero-argument factory producing a fresh awaitable per attempt.

        Raises:
            Exception: The last transient error once ``max_attempts`` is
                exhausted, or any non-transient error immediately.
        """
        attempt = 0
        while True:
            try:
                return await call()
            except self.retry_on as exc:
                attempt += 1
                logger.warning(
                    "Ledger query %s failed: %s",
                    operation,
                    exc,
                    extra={"operation": operation, "attempt": attempt},
                )
                if self.on_retry is not None:
                    self.on_retry(operation, attempt, exc)
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    raise
                await self.sleep(self.next_delay())
                logger.debug(
                    "Retrying ledger query %s, attempt %d",
                    operation,
                    attempt + 1,
                    extra={"operation": operation, "attempt": attempt + 1},
                )
