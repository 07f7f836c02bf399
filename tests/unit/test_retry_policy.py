"""
Unit tests for the retry policy and cron helpers.
"""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from pinger.config import RetrySettings
from pinger.queue.cron import next_run, validate_cron
from pinger.worker.retry import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_exponential_backoff(self):
        policy = RetryPolicy(backoff_seconds=5, backoff_multiplier=2, max_backoff_seconds=300)

        assert policy.delay_for(1) == timedelta(seconds=5)
        assert policy.delay_for(2) == timedelta(seconds=10)
        assert policy.delay_for(3) == timedelta(seconds=20)

    def test_backoff_is_capped(self):
        policy = RetryPolicy(backoff_seconds=5, backoff_multiplier=10, max_backoff_seconds=60)

        assert policy.delay_for(4) == timedelta(seconds=60)

    def test_next_retry_at(self):
        policy = RetryPolicy(max_attempts=3, backoff_seconds=5)
        now = datetime(2024, 1, 1, 12, 0, 0)

        assert policy.next_retry_at(1, now=now) == now + timedelta(seconds=5)
        assert policy.next_retry_at(2, now=now) == now + timedelta(seconds=10)

    def test_exhausted(self):
        policy = RetryPolicy(max_attempts=3)

        assert policy.next_retry_at(3) is None
        assert policy.should_retry(2) is True
        assert policy.should_retry(3) is False

    def test_large_attempt_uses_cap(self):
        policy = RetryPolicy(max_attempts=5000, backoff_seconds=1, max_backoff_seconds=60)
        now = datetime(2024, 1, 1)

        assert policy.delay_for(1100) == timedelta(seconds=60)
        assert policy.next_retry_at(1100, now=now) == now + timedelta(seconds=60)

    def test_attempt_limit_is_bounded(self):
        with pytest.raises(ValidationError):
            RetrySettings(max_attempts=5000)

    def test_per_job_override(self):
        policy = RetryPolicy(max_attempts=3)

        assert policy.should_retry(3, max_attempts=5) is True
        assert policy.next_retry_at(1, max_attempts=1) is None

    def test_from_settings(self):
        policy = RetryPolicy.from_settings(
            RetrySettings(max_attempts=7, backoff_seconds=1, backoff_multiplier=3, max_backoff_seconds=9)
        )

        assert policy == RetryPolicy(7, 1, 3, 9)


class TestCron:
    """Tests for cron validation and scheduling."""

    def test_next_run(self):
        after = datetime(2024, 1, 1, 12, 2, 30)

        assert next_run("*/5 * * * *", after) == datetime(2024, 1, 1, 12, 5)

    def test_next_run_is_strictly_after(self):
        after = datetime(2024, 1, 1, 12, 5)

        assert next_run("*/5 * * * *", after) == datetime(2024, 1, 1, 12, 10)

    @pytest.mark.parametrize("expression", ["", "not a cron", "61 * * * *"])
    def test_invalid_expressions(self, expression: str):
        with pytest.raises(ValueError):
            validate_cron(expression)
