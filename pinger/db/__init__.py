"""
Database module.
Contains database connection, models, and repository implementations.
"""

from pinger.db.connection import Database
from pinger.db.models import Base, Job, RecurringJob
from pinger.db.repository import JobRepository

__all__ = [
    "Database",
    "Job",
    "RecurringJob",
    "Base",
    "JobRepository",
]
