"""
Bounded retry policy for provider calls and result downloads.

The sleep function is injectable so callers and tests control time.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Fixed-delay retry: up to max_attempts calls, `delay` seconds apart."""

    max_attempts: int = 3
    delay: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    attempts: int = field(default=0, init=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def call(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        """
        Run `operation` until it returns, re-raising the last exception once attempts run out.

        Args:
            operation: Zero-argument coroutine factory, invoked once per attempt
            label: Name used in log lines

        Returns:
            The first successful result
        """
        self.attempts = 0
        last_error: Exception = RuntimeError(f"{label} was never attempted")

        while self.attempts < self.max_attempts:
            self.attempts += 1
            try:
                return await operation()
            except Exception as e:
                last_error = e
                logger.warning(f"{label} failed (attempt {self.attempts}/{self.max_attempts}): {e}")
                if self.attempts < self.max_attempts:
                    await self.sleep(self.delay)

        logger.error(f"{label} failed after {self.attempts} attempts: {last_error}")
        raise last_error
