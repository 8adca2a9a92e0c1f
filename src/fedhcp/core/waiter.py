"""
Bounded waits on store records.

The caller's thread blocks in a fixed-interval poll loop until a predicate
holds or the ceiling is reached. The first check happens immediately.
"""

import time
from typing import Callable, TypeVar

from fedhcp.core.exceptions import WaitTimeoutError
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 0.5


def await_terminal_state(
    fetch: Callable[[], T],
    is_terminal: Callable[[T], bool],
    timeout: float,
    interval: float = DEFAULT_POLL_INTERVAL,
    description: str = "resource",
) -> T:
    """
    Poll ``fetch`` until ``is_terminal`` accepts its result.

    Args:
        fetch: Returns the current observation (may be None for "absent").
        is_terminal: Predicate over the observation.
        timeout: Overall ceiling in seconds.
        interval: Delay between polls in seconds.
        description: Used in log and error messages.

    Returns:
        The first observation accepted by ``is_terminal``.

    Raises:
        WaitTimeoutError: If the ceiling is reached first.
    """
    deadline = time.monotonic() + timeout
    polls = 0

    while True:
        value = fetch()
        polls += 1
        if is_terminal(value):
            logger.trace(f"{description} reached terminal state after {polls} poll(s)")
            return value

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning(f"Gave up waiting for {description} after {timeout}s")
            raise WaitTimeoutError(description, timeout)
        time.sleep(min(interval, remaining))
