"""
Retry Policy - Bounded exponential backoff for transient read failures.

The device read loop consults a policy after each failed read: while the
number of consecutive failures stays within ``max_retries`` it sleeps for
``get_delay()`` and tries again, otherwise the failure becomes fatal.
"""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass
class RetryPolicy:
    """
    Configurable retry bound with exponential backoff and jitter.

    Usage:
        policy = RetryPolicy(max_retries=3, base_delay=0.1)

        failures += 1
        if policy.exhausted(failures):
            raise fatal_error
        await asyncio.sleep(policy.get_delay(failures))
    """

    max_retries: int = 3
    base_delay: float = 0.1
    max_delay: float = 1.0
    backoff_factor: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")

    def exhausted(self, failures: int) -> bool:
        """Return True once ``failures`` consecutive failures exceed the bound."""
        return failures > self.max_retries

    def get_delay(self, retry: int) -> float:
        """
        Calculate delay before the given retry.

        Args:
            retry: Retry number (1-based)

        Returns:
            Delay in seconds with jitter applied
        """
        if retry < 1:
            return 0.0

        delay = self.base_delay * (self.backoff_factor ** (retry - 1))
        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)


DEFAULT_READ_RETRY_POLICY = RetryPolicy()

# Retrying open() from the CLI: fewer, slower attempts.
PATIENT_OPEN_RETRY_POLICY = RetryPolicy(
    max_retries=3,
    base_delay=1.0,
    max_delay=10.0,
    backoff_factor=2.0,
)
