"""Retry policy for retryable completion failures."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from .errors import ConfigError, ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Bounded attempts with a per-attempt backoff schedule.

    Only rate-limit and transport errors are retried. The last backoff value
    is reused once the schedule is exhausted.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        backoff: Sequence[float] = (1, 4, 9),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ConfigError(f"max_attempts must be at least 1, got {max_attempts}.")
        if any(value < 0 for value in backoff):
            raise ConfigError("retry_backoff values must not be negative.")
        self.max_attempts = max_attempts
        self.backoff = list(backoff) or [0.0]
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return self.backoff[min(attempt - 1, len(self.backoff) - 1)]

    async def call(self, operation: Callable[[], Awaitable[T]], *, label: str) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except ServiceError as exc:
                if not exc.retryable or attempt >= self.max_attempts:
                    raise
                wait_time = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d of %d: %s). Retrying in %.1fs...",
                    label,
                    attempt,
                    self.max_attempts,
                    exc,
                    wait_time,
                )
                await self._sleep(wait_time)
