"""
Composition root.

A small dependency container mapping keys to factories. It is built once at
startup, frozen, and then only read; job workers and request handlers resolve
from it concurrently.
"""

import logging
import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

from pinger.errors import ResolutionError

logger = logging.getLogger(__name__)

# A factory receives the container so it can resolve its own dependencies
Factory = Callable[["Container"], Any]


@dataclass(frozen=True)
class Registration:
    """A factory and its lifetime."""

    factory: Factory
    singleton: bool = False


class Container:
    """
    Explicit dependency container.

    Services and job types share one key space. Job types are registered with
    register_job so the activator and the API can tell them apart from plain
    services.
    """

    def __init__(self):
        self._registrations: dict[Hashable, Registration] = {}
        self._instances: dict[Hashable, Any] = {}
        self._job_types: set[str] = set()
        self._lock = threading.RLock()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(
        self,
        key: Hashable,
        factory: Factory,
        *,
        singleton: bool = False,
    ) -> None:
        """
        Register a factory under a key.

        Args:
            key: The lookup key.
            factory: Callable receiving the container and returning an instance.
            singleton: Create the instance once and reuse it.

        Raises:
            RuntimeError: If the container is already frozen.
        """
        if self._frozen:
            raise RuntimeError(f"Container is frozen; cannot register '{key}'")
        self._registrations[key] = Registration(factory=factory, singleton=singleton)
        logger.debug("Registered service", extra={"key": str(key), "singleton": singleton})

    def register_instance(self, key: Hashable, instance: Any) -> None:
        """Register an already built instance."""
        self.register(key, lambda _: instance, singleton=True)
        self._instances[key] = instance

    def register_job(
        self,
        job_type: str,
        factory: Factory,
        *,
        singleton: bool = False,
    ) -> None:
        """Register a job handler factory under its job type key."""
        self.register(job_type, factory, singleton=singleton)
        self._job_types.add(job_type)

    def is_registered(self, key: Hashable) -> bool:
        return key in self._registrations

    def is_job_type(self, job_type: str) -> bool:
        return job_type in self._job_types

    def job_types(self) -> list[str]:
        """List all registered job types."""
        return sorted(self._job_types)

    def freeze(self) -> "Container":
        """Close registration. Returns self for chaining."""
        self._frozen = True
        logger.info(
            "Composition root built",
            extra={"services": len(self._registrations), "job_types": len(self._job_types)},
        )
        return self

    def resolve(self, key: Hashable) -> Any:
        """
        Resolve an instance for a key.

        Raises:
            ResolutionError: If nothing is registered under the key.
        """
        registration = self._registrations.get(key)
        if registration is None:
            raise ResolutionError(str(key), "no registration")

        if not registration.singleton:
            return registration.factory(self)

        instance = self._instances.get(key)
        if instance is not None:
            return instance

        with self._lock:
            if key not in self._instances:
                self._instances[key] = registration.factory(self)
            return self._instances[key]
