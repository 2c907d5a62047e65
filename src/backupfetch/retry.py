"""Bounded polling and retry helpers.

Used for latency absorption (waiting for a file a subprocess just
produced) and for disposal verification. Never for retrying an
operation that failed outright.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger("backupfetch.retry")

T = TypeVar("T")


def wait_until(
    predicate: Callable[[], bool],
    attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll a predicate with a fixed delay between checks.

    Args:
        predicate: Zero-argument check, True when the wait is over.
        attempts: Maximum number of checks (at least one is made).
        delay: Seconds between checks.
        sleep: Sleep function, injectable for tests.

    Returns:
        bool: True if the predicate held within the budget.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        if predicate():
            return True
        if attempt < attempts:
            logger.debug("Condition not met (attempt %d/%d), waiting %.1fs", attempt, attempts, delay)
            sleep(delay)
    return False


def retry_call(
    func: Callable[[], T],
    succeeded: Callable[[T], bool],
    attempts: int,
    delay: float,
    backoff: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[T, int]:
    """Call func until succeeded(result) holds, with growing delay.

    Args:
        func: The action to attempt.
        succeeded: Post-condition evaluated on each result.
        attempts: Maximum number of calls.
        delay: Initial delay in seconds.
        backoff: Multiplier applied to the delay after each failure.
        sleep: Sleep function, injectable for tests.

    Returns:
        tuple: The last result and the number of calls made.
    """
    attempts = max(1, attempts)
    wait = delay
    result = func()
    made = 1
    while not succeeded(result) and made < attempts:
        sleep(wait)
        wait *= backoff
        result = func()
        made += 1
    return result, made
