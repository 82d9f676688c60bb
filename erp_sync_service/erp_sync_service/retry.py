"""Exponential backoff for transient catalog failures."""

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import CatalogError
from .logger import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry an operation.

    Attributes:
        max_attempts: Total number of tries, including the first one
        initial_delay: Seconds to wait before the second try
        multiplier: Factor applied to the delay after every failed try
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.multiplier < 1:
            raise ValueError("initial_delay must be >= 0 and multiplier >= 1")

    def delays(self) -> Iterator[float]:
        """Yield the wait before each retry (``max_attempts - 1`` values)."""
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            yield delay
            delay *= self.multiplier


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_retriable(error: BaseException) -> bool:
    return isinstance(error, CatalogError) and error.retriable


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Only retriable catalog errors (``CatalogUnavailableError``) are retried.
    Deterministic failures such as not-found or rejected input propagate on
    the first attempt. The last error propagates once every attempt failed.

    Args:
        operation: Zero-argument coroutine function to run
        policy: Attempt count and backoff schedule
        description: Short label used in log lines
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Whatever ``operation`` returns
    """
    delays = policy.delays()
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if not is_retriable(e):
                raise
            delay = next(delays, None)
            if delay is None:
                logger.error(
                    f"Giving up | operation={description} | attempts={attempt} | error={e}"
                )
                raise
            logger.warning(
                f"Operation failed, retrying | operation={description} | attempt={attempt}/{policy.max_attempts} | "
                f"retry_in_seconds={delay:.1f} | error={e}"
            )
            await sleep(delay)
            attempt += 1
