"""
Retry policy for failed job attempts.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from pinger.config import RetrySettings


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with a cap.

    Attempt ``n`` (1-based) that fails is retried after
    ``backoff_seconds * backoff_multiplier ** (n - 1)`` seconds, capped at
    ``max_backoff_seconds``, until ``max_attempts`` attempts have run.
    """

    max_attempts: int = 3
    backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 300.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            backoff_seconds=settings.backoff_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    def delay_for(self, attempt: int) -> timedelta:
        """Backoff before the attempt following ``attempt``."""
        try:
            seconds = self.backoff_seconds * self.backoff_multiplier ** max(attempt - 1, 0)
        except OverflowError:
            seconds = self.max_backoff_seconds
        return timedelta(seconds=min(seconds, self.max_backoff_seconds))

    def should_retry(self, attempt: int, max_attempts: int | None = None) -> bool:
        return attempt < (max_attempts or self.max_attempts)

    def next_retry_at(
        self,
        attempt: int,
        max_attempts: int | None = None,
        now: datetime | None = None,
    ) -> datetime | None:
        """
        When to run the next attempt, or None if retries are exhausted.

        Args:
            attempt: The attempt that just failed.
            max_attempts: Per-job override of the attempt limit.
            now: Reference time, UTC.
        """
        if not self.should_retry(attempt, max_attempts):
            return None
        return (now or datetime.utcnow()) + self.delay_for(attempt)
