# tests/test_container.py
import asyncio
import threading
from uuid import uuid4

import pytest

from conftest import RUNTIME_ID, blocking_run, make_runtime
from dockerrun.domain.container import ContainerHandle, ContainerRecord, ContainerStatus
from dockerrun.domain.errors import (
    ContainerNotFoundError,
    InvalidInputError,
    InvalidStateError,
    PersistenceError,
    RuntimeInvocationError,
)
from dockerrun.domain.ports import CommandResult
from dockerrun.services.container_service import ContainerService


async def _running(container_repo, **overrides) -> ContainerRecord:
    record = ContainerRecord(
        image_reference="ubuntu:latest",
        status=ContainerStatus.RUNNING,
        runtime_container_id=RUNTIME_ID,
        **overrides,
    )
    await container_repo.write(record)
    return record


# -------------------------------
# start
# -------------------------------
@pytest.mark.asyncio
async def test_start_container_runs_and_sets_running(service, docker_runtime):
    handle = await service.start_container("library/nginx:latest", {"PORT": "8080"}, 0)
    await service.pool.join()

    container = await service.get_container(handle)
    assert container.status == ContainerStatus.RUNNING
    assert container.runtime_container_id == RUNTIME_ID
    assert container.error_message is None
    assert container.environment_variables == {"PORT": "8080"}

    docker_runtime.run.assert_called_once_with(
        name=f"dockerrun-{handle.id}",
        image="library/nginx:latest",
        environment={"PORT": "8080"},
    )
    assert not service.scheduler.pending(handle.id)


@pytest.mark.asyncio
async def test_start_container_returns_before_runtime_finishes(service, docker_runtime):
    release = threading.Event()
    docker_runtime.run.side_effect = blocking_run(release)

    handle = await service.start_container("ubuntu:latest")
    assert isinstance(handle, ContainerHandle)
    assert (await service.get_container(handle)).status == ContainerStatus.STARTING

    release.set()
    await service.pool.join()
    assert (await service.get_container(handle)).status == ContainerStatus.RUNNING


@pytest.mark.asyncio
async def test_start_failure_sets_failed_with_truncated_message(container_repo, pool):
    docker_runtime = make_runtime(CommandResult(125, "Unable to find image " + "x" * 5000))
    service = ContainerService(container_repo, docker_runtime, pool)

    handle = await service.start_container("nope:latest")
    await pool.join()

    container = await service.get_container(handle)
    assert container.status == ContainerStatus.FAILED
    assert container.runtime_container_id is None
    assert container.error_message.startswith("docker run failed (exit code 125): Unable to find image")
    assert len(container.error_message) == 1000


@pytest.mark.asyncio
async def test_start_exception_sets_failed(service, docker_runtime):
    docker_runtime.run.side_effect = FileNotFoundError("docker")

    handle = await service.start_container("ubuntu:latest")
    await service.pool.join()

    container = await service.get_container(handle)
    assert container.status == ContainerStatus.FAILED
    assert container.error_message == "Start exception: docker"


@pytest.mark.asyncio
async def test_start_with_empty_output_is_a_failure(service, docker_runtime):
    docker_runtime.run.return_value = CommandResult(0, "   ")

    handle = await service.start_container("ubuntu:latest")
    await service.pool.join()

    container = await service.get_container(handle)
    assert container.status == ContainerStatus.FAILED
    assert container.runtime_container_id is None


@pytest.mark.asyncio
async def test_runtime_id_is_first_line_capped_at_64_chars(service, docker_runtime):
    long_id = "f" * 80
    docker_runtime.run.return_value = CommandResult(0, f"{long_id}\nsome warning")

    handle = await service.start_container("ubuntu:latest")
    await service.pool.join()

    assert (await service.get_container(handle)).runtime_container_id == "f" * 64


@pytest.mark.asyncio
@pytest.mark.parametrize("seconds", [-1, -30])
async def test_negative_auto_terminate_is_rejected_before_any_record(service, container_repo, docker_runtime, seconds):
    with pytest.raises(InvalidInputError):
        await service.start_container("ubuntu:latest", {}, seconds)

    assert await container_repo.list_ids() == []
    docker_runtime.run.assert_not_called()


@pytest.mark.asyncio
async def test_start_fails_cleanly_when_reload_after_run_errors(service, container_repo, docker_runtime, monkeypatch):
    real_read = container_repo.read
    calls = []

    async def flaky_read(container_id):
        calls.append(container_id)
        if len(calls) == 2:
            raise PersistenceError("transient")
        return await real_read(container_id)

    monkeypatch.setattr(container_repo, "read", flaky_read)

    handle = await service.start_container("ubuntu:latest", auto_terminate_seconds=30)
    await service.pool.join()

    container = await real_read(handle.id)
    assert container.status == ContainerStatus.FAILED
    assert container.error_message.startswith("Start exception")
    assert "transient" in container.error_message
    assert container.runtime_container_id is None
    docker_runtime.stop.assert_called_once_with(RUNTIME_ID)
    docker_runtime.remove.assert_called_once_with(RUNTIME_ID, force=True)
    assert not service.scheduler.pending(handle.id)


@pytest.mark.asyncio
async def test_start_job_gives_up_when_record_cannot_be_loaded(service, container_repo, docker_runtime, monkeypatch):
    async def broken_read(container_id):
        raise PersistenceError("disk gone")

    monkeypatch.setattr(container_repo, "read", broken_read)

    await service.start_container("ubuntu:latest")
    await service.pool.join()

    docker_runtime.run.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("seconds", [True, False, 1.5, "10"])
async def test_non_integer_auto_terminate_is_rejected(service, container_repo, docker_runtime, seconds):
    with pytest.raises(InvalidInputError):
        await service.start_container("ubuntu:latest", {}, seconds)

    assert await container_repo.list_ids() == []
    docker_runtime.run.assert_not_called()


@pytest.mark.asyncio
async def test_empty_image_reference_is_rejected(service, container_repo):
    with pytest.raises(InvalidInputError):
        await service.start_container("  ")
    assert await container_repo.list_ids() == []


# -------------------------------
# pause / unpause
# -------------------------------
@pytest.mark.asyncio
async def test_pause_and_unpause(service, container_repo, docker_runtime):
    record = await _running(container_repo)

    await service.pause_container(record.handle)
    assert (await service.get_container(record.id)).status == ContainerStatus.PAUSED
    docker_runtime.pause.assert_called_once_with(RUNTIME_ID)

    await service.unpause_container(record.handle)
    assert (await service.get_container(record.id)).status == ContainerStatus.RUNNING
    docker_runtime.unpause.assert_called_once_with(RUNTIME_ID)


@pytest.mark.asyncio
async def test_pause_on_starting_names_both_statuses(service, docker_runtime):
    release = threading.Event()
    docker_runtime.run.side_effect = blocking_run(release)
    handle = await service.start_container("ubuntu:latest")

    with pytest.raises(InvalidStateError) as exc_info:
        await service.pause_container(handle)

    assert exc_info.value.actual == "STARTING"
    assert exc_info.value.expected == "RUNNING"
    assert "STARTING" in str(exc_info.value) and "RUNNING" in str(exc_info.value)
    docker_runtime.pause.assert_not_called()

    release.set()
    await service.pool.join()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, runtime_id",
    [
        (ContainerStatus.STARTING, None),
        (ContainerStatus.PAUSED, RUNTIME_ID),
        (ContainerStatus.FAILED, None),
        (ContainerStatus.TERMINATED, RUNTIME_ID),
    ],
)
async def test_pause_outside_running_leaves_record_unchanged(service, container_repo, docker_runtime, status, runtime_id):
    record = ContainerRecord(
        image_reference="ubuntu:latest",
        status=status,
        runtime_container_id=runtime_id,
        error_message="boom" if status == ContainerStatus.FAILED else None,
    )
    await container_repo.write(record)

    with pytest.raises(InvalidStateError) as exc_info:
        await service.pause_container(record.handle)

    assert exc_info.value.actual == status.value
    assert await service.get_container(record.id) == record
    docker_runtime.pause.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [ContainerStatus.STARTING, ContainerStatus.RUNNING, ContainerStatus.FAILED, ContainerStatus.TERMINATED],
)
async def test_unpause_outside_paused_leaves_record_unchanged(service, container_repo, docker_runtime, status):
    record = ContainerRecord(image_reference="ubuntu:latest", status=status)
    await container_repo.write(record)

    with pytest.raises(InvalidStateError) as exc_info:
        await service.unpause_container(record.handle)

    assert exc_info.value.expected == "PAUSED"
    assert await service.get_container(record.id) == record
    docker_runtime.unpause.assert_not_called()


@pytest.mark.asyncio
async def test_pause_runtime_failure_raises_and_keeps_running(service, container_repo, docker_runtime):
    record = await _running(container_repo)
    docker_runtime.pause.return_value = CommandResult(1, "Error response from daemon: cannot pause")

    with pytest.raises(RuntimeInvocationError) as exc_info:
        await service.pause_container(record.handle)

    assert exc_info.value.exit_code == 1
    assert "cannot pause" in exc_info.value.output
    assert (await service.get_container(record.id)).status == ContainerStatus.RUNNING


@pytest.mark.asyncio
async def test_unpause_runtime_failure_raises_and_keeps_paused(service, container_repo, docker_runtime):
    record = ContainerRecord(
        image_reference="ubuntu:latest",
        status=ContainerStatus.PAUSED,
        runtime_container_id=RUNTIME_ID,
    )
    await container_repo.write(record)
    docker_runtime.unpause.return_value = CommandResult(1, "Error response from daemon: cannot unpause")

    with pytest.raises(RuntimeInvocationError) as exc_info:
        await service.unpause_container(record.handle)

    assert exc_info.value.exit_code == 1
    assert "cannot unpause" in exc_info.value.output
    container = await service.get_container(record.id)
    assert container.status == ContainerStatus.PAUSED
    assert container.runtime_container_id == RUNTIME_ID
    docker_runtime.unpause.assert_called_once_with(RUNTIME_ID)


@pytest.mark.asyncio
async def test_pause_unknown_container_is_not_found(service):
    with pytest.raises(ContainerNotFoundError):
        await service.pause_container(ContainerHandle(uuid4()))


# -------------------------------
# terminate
# -------------------------------
@pytest.mark.asyncio
async def test_terminate_is_idempotent(service, container_repo, docker_runtime):
    record = await _running(container_repo)

    await service.terminate_container(record.handle)
    await service.terminate_container(record.handle)

    container = await service.get_container(record.id)
    assert container.status == ContainerStatus.TERMINATED
    assert container.runtime_container_id == RUNTIME_ID
    docker_runtime.stop.assert_called_once_with(RUNTIME_ID)
    docker_runtime.remove.assert_called_once_with(RUNTIME_ID, force=True)


@pytest.mark.asyncio
async def test_terminate_paused_container(service, container_repo, docker_runtime):
    record = await _running(container_repo)
    await service.pause_container(record.handle)

    await service.terminate_container(record.handle)

    assert (await service.get_container(record.id)).status == ContainerStatus.TERMINATED
    docker_runtime.stop.assert_called_once_with(RUNTIME_ID)


@pytest.mark.asyncio
async def test_terminate_survives_runtime_failures(service, container_repo, docker_runtime):
    record = await _running(container_repo)
    docker_runtime.stop.return_value = CommandResult(1, "No such container")
    docker_runtime.remove.side_effect = OSError("docker went away")

    await service.terminate_container(record.handle)

    assert (await service.get_container(record.id)).status == ContainerStatus.TERMINATED
    docker_runtime.remove.assert_called_once()


@pytest.mark.asyncio
async def test_terminate_failed_container_skips_runtime(service, container_repo, docker_runtime):
    record = ContainerRecord(image_reference="ubuntu:latest", status=ContainerStatus.FAILED, error_message="boom")
    await container_repo.write(record)

    await service.terminate_container(record.handle)

    container = await service.get_container(record.id)
    assert container.status == ContainerStatus.TERMINATED
    assert container.error_message is None
    docker_runtime.stop.assert_not_called()
    docker_runtime.remove.assert_not_called()


@pytest.mark.asyncio
async def test_terminate_unknown_container_is_not_found(service):
    with pytest.raises(ContainerNotFoundError):
        await service.terminate_container(uuid4())


@pytest.mark.asyncio
async def test_terminate_while_starting_wins_and_cleans_up(service, docker_runtime):
    release = threading.Event()
    docker_runtime.run.side_effect = blocking_run(release)
    handle = await service.start_container("ubuntu:latest", auto_terminate_seconds=30)
    for _ in range(250):
        if docker_runtime.run.called:
            break
        await asyncio.sleep(0.02)
    assert docker_runtime.run.called

    await service.terminate_container(handle)
    assert (await service.get_container(handle)).status == ContainerStatus.TERMINATED
    docker_runtime.stop.assert_not_called()

    release.set()
    await service.pool.join()

    container = await service.get_container(handle)
    assert container.status == ContainerStatus.TERMINATED
    assert container.runtime_container_id is None
    docker_runtime.stop.assert_called_once_with(RUNTIME_ID)
    docker_runtime.remove.assert_called_once_with(RUNTIME_ID, force=True)
    assert not service.scheduler.pending(handle.id)


# -------------------------------
# auto-termination
# -------------------------------
@pytest.mark.asyncio
async def test_auto_termination_scenario(service, docker_runtime):
    handle = await service.start_container("library/nginx:latest", {"PORT": "8080"}, 2)

    for _ in range(100):
        container = await service.get_container(handle)
        if container.status == ContainerStatus.RUNNING:
            break
        await asyncio.sleep(0.02)
    assert container.status == ContainerStatus.RUNNING
    runtime_id = container.runtime_container_id
    assert service.scheduler.pending(handle.id)

    await asyncio.sleep(2.3)
    await service.pool.join()

    container = await service.get_container(handle)
    assert container.status == ContainerStatus.TERMINATED
    assert container.runtime_container_id == runtime_id
    assert not service.scheduler.pending(handle.id)

    await asyncio.sleep(0.5)
    docker_runtime.stop.assert_called_once_with(runtime_id)


@pytest.mark.asyncio
async def test_manual_terminate_cancels_auto_termination(service, docker_runtime):
    handle = await service.start_container("ubuntu:latest", {}, 1)
    await service.pool.join()
    assert service.scheduler.pending(handle.id)

    await service.terminate_container(handle)
    assert not service.scheduler.pending(handle.id)

    await asyncio.sleep(1.3)
    await service.pool.join()

    docker_runtime.stop.assert_called_once_with(RUNTIME_ID)
    docker_runtime.remove.assert_called_once_with(RUNTIME_ID, force=True)


@pytest.mark.asyncio
async def test_no_timer_without_auto_terminate(service):
    handle = await service.start_container("ubuntu:latest", {}, 0)
    await service.pool.join()
    assert len(service.scheduler) == 0
    assert (await service.get_container(handle)).status == ContainerStatus.RUNNING


# -------------------------------
# listing
# -------------------------------
@pytest.mark.asyncio
async def test_get_all_containers_skips_malformed_records(service, container_repo, tmp_path):
    good = await _running(container_repo)

    broken = tmp_path / "containers" / str(uuid4())
    broken.mkdir()
    (broken / "config.json").write_text("{not json")
    (tmp_path / "containers" / "not-a-uuid").mkdir()
    (tmp_path / "containers" / str(uuid4())).mkdir()  # no config yet

    containers = await service.get_all_containers()

    assert [c.id for c in containers] == [good.id]


@pytest.mark.asyncio
async def test_get_all_containers_skips_undecodable_records(service, container_repo, tmp_path):
    good = await _running(container_repo)

    broken = tmp_path / "containers" / str(uuid4())
    broken.mkdir()
    (broken / "config.json").write_bytes(b'{"imageReference": "\xff\xfe"}')

    containers = await service.get_all_containers()

    assert [c.id for c in containers] == [good.id]


@pytest.mark.asyncio
async def test_handles_compare_by_id(service):
    handle = await service.start_container("ubuntu:latest")
    await service.pool.join()
    assert handle == ContainerHandle(handle.id)
    assert handle == (await service.get_container(handle.id)).handle
    assert len({handle, ContainerHandle(handle.id)}) == 1
