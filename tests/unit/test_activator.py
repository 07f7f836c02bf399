"""
Unit tests for job activation.
"""

import pytest

from pinger.activator import ContainerJobActivator
from pinger.container import Container
from pinger.errors import ResolutionError
from pinger.worker.handlers import EchoJob


@pytest.fixture
def container(register_jobs) -> Container:
    container = Container()
    container.register_job("echo", lambda c: EchoJob())
    container.register("not_a_job_type", lambda c: EchoJob())
    register_jobs(container)
    return container.freeze()


@pytest.fixture
def activator(container: Container) -> ContainerJobActivator:
    return ContainerJobActivator(container)


class TestContainerJobActivator:
    """Tests for ContainerJobActivator."""

    def test_requires_frozen_container(self):
        with pytest.raises(RuntimeError):
            ContainerJobActivator(Container())

    def test_activate_registered_type(self, activator: ContainerJobActivator):
        handler = activator.activate("echo")

        assert isinstance(handler, EchoJob)

    def test_activate_builds_fresh_instances(self, activator: ContainerJobActivator):
        assert activator.activate("echo") is not activator.activate("echo")

    def test_can_activate(self, activator: ContainerJobActivator):
        assert activator.can_activate("echo")
        assert not activator.can_activate("unknown")
        assert not activator.can_activate("not_a_job_type")

    def test_unknown_type(self, activator: ContainerJobActivator):
        with pytest.raises(ResolutionError) as exc_info:
            activator.activate("unknown")

        assert exc_info.value.key == "unknown"
        assert "no job handler registered" in str(exc_info.value)

    def test_plain_service_is_not_a_job(self, activator: ContainerJobActivator):
        """Services share the key space but cannot be activated as jobs."""
        with pytest.raises(ResolutionError):
            activator.activate("not_a_job_type")

    def test_factory_error(self, activator: ContainerJobActivator):
        with pytest.raises(ResolutionError) as exc_info:
            activator.activate("broken_factory")

        assert "missing dependency" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.parametrize("job_type", ["not_a_job", "sync_job"])
    def test_instance_without_async_run(self, activator: ContainerJobActivator, job_type: str):
        with pytest.raises(ResolutionError) as exc_info:
            activator.activate(job_type)

        assert "async run(context)" in str(exc_info.value)

    def test_failure_is_deterministic(self, activator: ContainerJobActivator):
        """The same key fails the same way every time."""
        messages = set()
        for _ in range(3):
            with pytest.raises(ResolutionError) as exc_info:
                activator.activate("unknown")
            messages.add(str(exc_info.value))

        assert len(messages) == 1
