"""
Exponential backoff with jitter for provider calls.

Only errors whose ``retryable`` flag is set (TransientFailure) are retried.
Delay computation is a pure function of the attempt number and the jitter
draw so the policy can be tested without waiting.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import FilingError

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_MIN = 0.5
JITTER_MAX = 1.0


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry settings."""
    max_retries: int = 3  # retries after the first attempt
    base_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def compute_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """
    Delay in seconds before retry number ``attempt`` (0-based).

    Formula: min(max_delay, base_delay * 2^attempt) * jitter, with jitter
    clamped to [0.5, 1.0].
    """
    jitter = min(JITTER_MAX, max(JITTER_MIN, jitter))
    exponential = min(max_delay, base_delay * (2 ** attempt))
    return exponential * jitter


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    jitter: Optional[Callable[[], float]] = None,
    description: str = "request",
) -> T:
    """
    Call ``fn`` until it succeeds, raises a non-retryable error, or the
    attempt cap is reached. The last error is re-raised unchanged.
    """
    draw = jitter or (lambda: random.uniform(JITTER_MIN, JITTER_MAX))

    attempt = 0
    while True:
        try:
            return fn()
        except FilingError as e:
            if not e.retryable:
                raise
            if attempt + 1 >= policy.max_attempts:
                logger.error(
                    f"{description} failed after {policy.max_attempts} attempts: {e}"
                )
                raise
            delay = compute_delay(attempt, policy.base_delay, policy.max_delay, draw())
            logger.warning(
                f"{description} attempt {attempt + 1}/{policy.max_attempts} failed "
                f"({e}); retrying in {delay:.2f}s"
            )
            sleep(delay)
            attempt += 1
