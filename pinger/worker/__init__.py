"""
Job server module.
Contains the job server, retry policy and built-in job handlers.
"""

from pinger.worker.retry import RetryPolicy
from pinger.worker.server import JobServer

__all__ = ["JobServer", "RetryPolicy"]
