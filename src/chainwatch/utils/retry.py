"""
Retry utilities for exchange requests.

Provides an exponential backoff policy value and a generic "retry this
operation" helper. Sleep is injectable so tests run without real delays.

Key patterns:
- RetryPolicy is immutable and produces its backoff sequence on demand
- Errors carry should_retry; non-retryable errors are raised immediately
- Exhaustion raises RetriesExhausted wrapping the last error
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

from loguru import logger

from chainwatch.core.errors import ChainwatchError, RetriesExhausted

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Exponential backoff policy.

    Delay before retry n (1-based) is min(base_delay * factor ** (n - 1), max_delay),
    plus up to ``jitter`` seconds of random noise.

    Attributes:
        base_delay: First backoff delay in seconds
        factor: Multiplier applied per retry
        max_delay: Cap on any single delay in seconds
        max_attempts: Total attempts including the first
        jitter: Upper bound of uniform random noise added to each delay
    """

    base_delay: float = 0.1
    factor: float = 2.0
    max_delay: float = 3.0
    max_attempts: int = 3
    jitter: float = 0.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays cannot be negative")
        if self.factor < 1:
            raise ValueError(f"factor must be >= 1, got {self.factor}")

    def delays(self, rng: Optional[random.Random] = None) -> Iterator[float]:
        """Yield the max_attempts - 1 delays slept between attempts."""
        rng = rng or random
        for retry in range(self.max_attempts - 1):
            delay = min(self.base_delay * (self.factor ** retry), self.max_delay)
            if self.jitter:
                delay += rng.uniform(0, self.jitter)
            yield delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "request",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Execute an async operation with exponential backoff retry.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Backoff policy (attempt bound and delay sequence)
        description: Label used in log lines
        sleep: Awaitable sleep, injected by tests

    Returns:
        Result of the first successful attempt

    Raises:
        ChainwatchError: First non-retryable error, unchanged
        RetriesExhausted: When every attempt failed with a retryable error
    """
    delays = policy.delays()
    last_error: Optional[ChainwatchError] = None

    for attempt in range(1, policy.max_attempts + 1):
        started = time.perf_counter()
        try:
            result = await operation()
        except ChainwatchError as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            if not e.should_retry:
                logger.warning(
                    f"{description}: attempt {attempt}/{policy.max_attempts} failed "
                    f"({e.error_type}, {elapsed_ms:.0f}ms), not retrying: {e}"
                )
                raise

            last_error = e
            logger.warning(
                f"{description}: attempt {attempt}/{policy.max_attempts} failed "
                f"({e.error_type}, {elapsed_ms:.0f}ms): {e}"
            )
            if attempt < policy.max_attempts:
                delay = next(delays)
                logger.debug(f"{description}: retrying in {delay:.2f}s")
                await sleep(delay)
            continue

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{description}: ok on attempt {attempt} ({elapsed_ms:.0f}ms)")
        return result

    logger.error(f"{description}: all {policy.max_attempts} attempts exhausted")
    raise RetriesExhausted(policy.max_attempts, last_error)
