"""
Cron helpers for recurring triggers.
"""

from datetime import datetime

from croniter import croniter


def validate_cron(expression: str) -> str:
    """
    Validate a cron expression.

    Raises:
        ValueError: If the expression is not a valid cron expression.
    """
    expression = expression.strip()
    if not expression or not croniter.is_valid(expression):
        raise ValueError(f"Invalid cron expression: {expression!r}")
    return expression


def next_run(expression: str, after: datetime | None = None) -> datetime:
    """Return the first fire time strictly after ``after`` (UTC, naive)."""
    base = after or datetime.utcnow()
    return croniter(validate_cron(expression), base).get_next(datetime)
