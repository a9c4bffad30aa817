"""Bounded retry with exponential backoff for transient store failures."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ticketsync.snapshots.errors import TransientStoreError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ``TransientStoreError`` up to ``attempts`` total tries.

    Delay before retry ``n`` (0-based) is ``base_delay * 2**n`` capped at
    ``max_delay``. Every other exception propagates on the first try.
    ``attempts=1`` disables retrying.
    """

    attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.attempts < 1:
            msg = f"attempts must be at least 1, got {self.attempts}"
            raise ValueError(msg)

    def delay_for(self, retry_index: int) -> float:
        """Backoff before the given retry (0 = first retry)."""
        return min(self.base_delay * (2**retry_index), self.max_delay)

    async def run[T](self, operation: Callable[[], Awaitable[T]], describe: str) -> T:
        """Run ``operation``, retrying transient store failures.

        Args:
            operation: Zero-argument coroutine factory; called once per try.
            describe: Short label for log lines (e.g. "fetch ticket-42").

        Raises:
            TransientStoreError: If every attempt failed transiently.
        """
        for retry_index in range(self.attempts):
            try:
                return await operation()
            except TransientStoreError:
                if retry_index == self.attempts - 1:
                    logger.error(
                        "%s failed after %d attempt(s)", describe, self.attempts
                    )
                    raise
                delay = self.delay_for(retry_index)
                logger.warning(
                    "%s failed transiently (attempt %d/%d), retrying in %.2fs",
                    describe,
                    retry_index + 1,
                    self.attempts,
                    delay,
                    exc_info=True,
                )
                await self.sleep(delay)
        msg = "unreachable"
        raise AssertionError(msg)
