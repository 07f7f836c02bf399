"""
Job activation.

The job server never constructs handlers itself: it asks an activator for a
handler instance by job type key. The container-backed activator resolves
through the composition root built at startup.
"""

import inspect
import logging
from abc import ABC, abstractmethod

from pinger.container import Container
from pinger.errors import ResolutionError
from pinger.types.job import JobHandler

logger = logging.getLogger(__name__)


class JobActivator(ABC):
    """Produces runnable handler instances for job types."""

    @abstractmethod
    def activate(self, job_type: str) -> JobHandler:
        """
        Produce a handler for a job type.

        Raises:
            ResolutionError: If no valid handler can be produced.
        """

    @abstractmethod
    def can_activate(self, job_type: str) -> bool:
        """Whether a handler is registered for the job type."""


class ContainerJobActivator(JobActivator):
    """Activator resolving handlers from a frozen Container."""

    def __init__(self, container: Container):
        """
        Initialize the activator.

        Args:
            container: The composition root. Must already be frozen.

        Raises:
            RuntimeError: If the container is still open for registration.
        """
        if not container.frozen:
            raise RuntimeError(
                "Composition root must be built (frozen) before the activator is created"
            )
        self._container = container

    def can_activate(self, job_type: str) -> bool:
        return self._container.is_job_type(job_type)

    def activate(self, job_type: str) -> JobHandler:
        if not self._container.is_job_type(job_type):
            raise ResolutionError(job_type, "no job handler registered")

        try:
            instance = self._container.resolve(job_type)
        except ResolutionError:
            raise
        except Exception as e:
            logger.exception("Job factory raised", extra={"job_type": job_type})
            raise ResolutionError(job_type, f"factory raised {e.__class__.__name__}: {e}") from e

        run = getattr(instance, "run", None)
        if not isinstance(instance, JobHandler) or not inspect.iscoroutinefunction(run):
            raise ResolutionError(
                job_type,
                f"{type(instance).__name__} does not provide an async run(context) method",
            )

        return instance
