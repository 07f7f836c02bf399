"""
Job queue module.
Contains the queue client contract and its SQL and in-memory implementations.
"""

from pinger.queue.base import JobQueueClient
from pinger.queue.cron import next_run, validate_cron
from pinger.queue.memory import InMemoryJobQueue
from pinger.queue.sql import SqlJobQueue

__all__ = [
    "JobQueueClient",
    "InMemoryJobQueue",
    "SqlJobQueue",
    "next_run",
    "validate_cron",
]
