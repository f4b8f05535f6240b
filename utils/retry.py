"""Retry helpers for calls against the Spotify Web API."""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from errors import RetryableError

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, jitter: bool = True) -> float:
    """Exponential backoff delay for a zero-based attempt number."""
    delay = base_delay * (2**attempt)
    if jitter and delay > 0:
        delay += random.uniform(0, base_delay)
    return delay


def call_with_retry(
    fn: Callable[[], T],
    retry_budget: int,
    base_delay: float,
    logger: logging.Logger,
    description: str = "API call",
    sleep: Callable[[float], None] = time.sleep,
    should_stop: Optional[Callable[[], bool]] = None,
) -> T:
    """Call ``fn`` and retry on RetryableError with exponential backoff.

    A rate limit with a server supplied ``retry_after`` waits at least that
    long. Non-retryable exceptions propagate immediately.

    Args:
        fn: Zero-argument callable to invoke
        retry_budget: Number of retries after the first attempt
        base_delay: Base delay in seconds for the backoff
        logger: Logger instance
        description: Label used in log messages
        sleep: Sleep function (injectable for tests)
        should_stop: Optional callable; when it returns True no further
            retries are attempted

    Returns:
        Result of ``fn``

    Raises:
        RetryableError: The last error once the budget is exhausted
    """
    attempt = 0
    while True:
        try:
            return fn()
        except RetryableError as e:
            if attempt >= retry_budget or (should_stop and should_stop()):
                logger.warning(
                    f"{description} failed after {attempt + 1} attempt(s): {str(e)}"
                )
                raise

            wait = backoff_delay(attempt, base_delay)
            retry_after = getattr(e, "retry_after", None)
            if retry_after:
                wait = max(wait, float(retry_after))

            attempt += 1
            logger.info(
                f"{description} failed ({str(e)}), retrying in {wait:.1f}s "
                f"(attempt {attempt}/{retry_budget})"
            )
            sleep(wait)
