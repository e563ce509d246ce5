"""Retry policy with exponential backoff and jitter.

The policy is a plain value object; ``call_with_retry`` takes injectable
``sleep`` and ``rng`` so delays can be asserted without waiting.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class JitterStrategy(str, Enum):
    FULL = "full"
    NONE = "none"


def is_retryable(exc: BaseException) -> bool:
    """Default predicate: trust the ``retryable`` flag carried by the error."""
    return bool(getattr(exc, "retryable", False))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: JitterStrategy = JitterStrategy.FULL
    retryable: Callable[[BaseException], bool] = field(default=is_retryable)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be at least 1")

    def backoff_ceiling(self, attempt: int) -> float:
        """Upper bound of the delay after the given (1-based) failed attempt."""
        return self.base_delay * (self.multiplier ** (attempt - 1))

    def compute_delay(self, attempt: int, rng: random.Random) -> float:
        ceiling = self.backoff_ceiling(attempt)
        if self.jitter == JitterStrategy.FULL:
            return rng.uniform(0.0, ceiling)
        return ceiling

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and self.retryable(exc)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
    label: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, a non-retryable error occurs, or attempts run out.

    The last error is re-raised unchanged.
    """
    rng = rng or random.Random()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not policy.should_retry(exc, attempt):
                logger.warning(
                    f"{label}.giving_up",
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise
            delay = policy.compute_delay(attempt, rng)
            logger.info(
                f"{label}.retry",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay=round(delay, 3),
                error=str(exc),
            )
            await sleep(delay)
