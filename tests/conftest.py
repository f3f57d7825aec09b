import threading
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from dockerrun.domain.ports import CommandResult
from dockerrun.repositories.file_repository import JSONFileContainerRepository
from dockerrun.services.container_service import ContainerService
from dockerrun.services.worker_pool import WorkerPool

RUNTIME_ID = "abc123def456"


def make_runtime(run_result: CommandResult | None = None) -> MagicMock:
    """Runtime double: every command succeeds unless told otherwise."""
    docker_runtime = MagicMock()
    docker_runtime.run.return_value = run_result or CommandResult(0, f"{RUNTIME_ID}\n")
    docker_runtime.pause.return_value = CommandResult(0, RUNTIME_ID)
    docker_runtime.unpause.return_value = CommandResult(0, RUNTIME_ID)
    docker_runtime.stop.return_value = CommandResult(0, RUNTIME_ID)
    docker_runtime.remove.return_value = CommandResult(0, RUNTIME_ID)
    return docker_runtime


def blocking_run(release: threading.Event, result: CommandResult | None = None):
    """A ``run`` that holds its pool thread until ``release`` is set."""
    def run(**kwargs):
        release.wait(timeout=5)
        return result or CommandResult(0, RUNTIME_ID)
    return run


@pytest.fixture
def container_repo(tmp_path):
    return JSONFileContainerRepository(tmp_path)


@pytest.fixture
def docker_runtime():
    return make_runtime()


@pytest_asyncio.fixture
async def pool():
    worker_pool = WorkerPool(max_workers=2)
    yield worker_pool
    await worker_pool.shutdown()


@pytest_asyncio.fixture
async def service(container_repo, docker_runtime, pool):
    container_service = ContainerService(container_repo, docker_runtime, pool)
    yield container_service
    container_service.scheduler.cancel_all()
