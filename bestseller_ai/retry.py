"""
Retry / Backoff Engine
======================

Wraps a single provider call with bounded retries. Each failure is
classified as transient (rate limits, network trouble, temporary
unavailability) or permanent (bad credentials and everything else).
Permanent failures are raised immediately; transient ones are retried
after an exponential backoff of ``2**attempt * 1000`` milliseconds.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .validation import InputValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3

RATE_LIMIT_INDICATORS = ("rate limit", "rate_limit", "429")
NETWORK_INDICATORS = (
    "network",
    "timeout",
    "etimedout",
    "econnreset",
    "fetch failed",
)
UNAVAILABLE_INDICATORS = (
    "unavailable",
    "503",
    "temporarily unavailable",
    "overloaded",
)
TRANSIENT_INDICATORS = RATE_LIMIT_INDICATORS + NETWORK_INDICATORS + UNAVAILABLE_INDICATORS

# Retrying cannot fix a bad credential; these win over any transient keyword
PERMANENT_INDICATORS = (
    "401",
    "unauthorized",
    "403",
    "forbidden",
    "invalid credentials",
    "invalid api key",
    "api key is required",
)


def is_transient_error(error: BaseException | str) -> bool:
    """Check if an error is worth retrying"""
    message = str(error).lower()
    if any(indicator in message for indicator in PERMANENT_INDICATORS):
        return False
    return any(indicator in message for indicator in TRANSIENT_INDICATORS)


def backoff_delay_ms(attempt: int) -> int:
    """Delay before retrying after the 0-indexed ``attempt`` failed"""
    return (2**attempt) * 1000


@dataclass
class RetryState:
    """Per-invocation retry bookkeeping"""

    attempt_number: int = 0
    last_error: BaseException | None = None

    @property
    def next_delay_ms(self) -> int:
        return backoff_delay_ms(self.attempt_number)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    on_retry: Callable[[RetryState], None] | None = None,
) -> T:
    """
    Run ``func`` until it succeeds, fails permanently, or the attempt budget
    is spent.

    Args:
        func: Zero-argument coroutine factory performing one attempt
        max_attempts: Total number of calls allowed (at least 1)
        on_retry: Called before each backoff sleep with the current state

    Returns:
        Whatever ``func`` returns on its first success

    Raises:
        The permanent error as soon as one is seen, otherwise the last
        transient error once the budget is exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    state = RetryState()

    while True:
        try:
            return await func()
        except Exception as e:
            state.last_error = e

            if not is_transient_error(e):
                logger.debug(
                    f"Permanent failure, not retrying: "
                    f"{InputValidator.sanitize_for_logging(str(e))}"
                )
                raise

            if state.attempt_number + 1 >= max_attempts:
                logger.warning(
                    f"All {max_attempts} attempts exhausted. Last error: "
                    f"{InputValidator.sanitize_for_logging(str(e))}"
                )
                raise

            delay_ms = state.next_delay_ms
            logger.warning(
                f"Retrying after error (attempt {state.attempt_number + 1}/"
                f"{max_attempts}, waiting {delay_ms}ms): "
                f"{InputValidator.sanitize_for_logging(str(e))}"
            )
            if on_retry:
                on_retry(state)

            await asyncio.sleep(delay_ms / 1000)
            state.attempt_number += 1
