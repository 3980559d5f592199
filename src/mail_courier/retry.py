# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Retry with exponential backoff for boolean send operations.

The orchestrator does not know which transport it wraps: an operation is
any coroutine function returning True on success. Failed attempts are
followed by ``base_delay * 2**attempt`` seconds of sleep (attempt counted
from 1), except after the last one.

Example::

    ok = await send_with_retry(lambda: publisher.publish(payload), max_attempts=3)
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .logger import get_logger

if TYPE_CHECKING:
    from .metrics import CourierMetrics

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.1

logger = get_logger("retry")

Operation = Callable[[], Awaitable[bool]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """Backoff schedule.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Seconds multiplied by ``2**attempt``.
        max_delay: Optional cap on a single wait.
        jitter: Fraction of the delay added or removed at random (0 disables).
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float | None = None
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        delay = self.base_delay * (2 ** attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.jitter:
            delay += delay * random.uniform(-self.jitter, self.jitter)
        return max(delay, 0.0)


async def send_with_retry(
    op: Operation,
    max_attempts: int | None = None,
    *,
    policy: RetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    operation: str = "send",
    metrics: CourierMetrics | None = None,
) -> bool:
    """Run ``op`` until it succeeds or the attempts are used up.

    Args:
        op: Coroutine function returning True on success. An exception raised
            by it counts as a failed attempt.
        max_attempts: Overrides ``policy.max_attempts``.
        policy: Backoff schedule; defaults to :class:`RetryPolicy`.
        sleep: Awaitable sleep, replaceable in tests.
        operation: Label used in logs and metrics.
        metrics: Optional metrics collector.

    Returns:
        True on the first successful attempt, False when all failed.
    """
    policy = policy or RetryPolicy()
    attempts = max_attempts if max_attempts is not None else policy.max_attempts
    if attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        if metrics:
            metrics.inc_attempt(operation)
        try:
            success = bool(await op())
        except Exception:
            logger.exception("%s attempt %d/%d raised", operation, attempt, attempts)
            success = False

        if success:
            if attempt > 1:
                logger.info("%s succeeded after %d attempts", operation, attempt)
            return True

        if attempt < attempts:
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed, retry %d/%d after %.0fms", operation, attempt, attempts, delay * 1000
            )
            await sleep(delay)

    logger.error("%s failed after %d attempts", operation, attempts)
    if metrics:
        metrics.inc_exhausted(operation)
    return False


__all__ = ["DEFAULT_BASE_DELAY", "DEFAULT_MAX_ATTEMPTS", "RetryPolicy", "send_with_retry"]
