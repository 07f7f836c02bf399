"""
Error taxonomy for the job host.

Startup errors are fatal. Resolution and handler errors are recorded on the
job that raised them. Request pipeline errors become HTTP 500 responses.
"""

from pathlib import Path


class PingerError(Exception):
    """Base class for all application errors."""


class StartupConfigError(PingerError):
    """Configuration could not be loaded; nothing starts."""


class ConfigMissingError(StartupConfigError):
    """A required configuration file is absent."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Required configuration file not found: {path}")


class ResolutionError(PingerError):
    """The composition root cannot produce an instance for a key."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Cannot resolve '{key}': {reason}")


class HandlerExecutionError(PingerError):
    """A job handler raised or reported failure."""

    def __init__(self, job_type: str, message: str):
        self.job_type = job_type
        super().__init__(message)


class RequestPipelineError(PingerError):
    """Wraps an unhandled exception raised while serving a request."""

    def __init__(self, error_id: str, original: BaseException):
        self.error_id = error_id
        self.original = original
        super().__init__(str(original))
