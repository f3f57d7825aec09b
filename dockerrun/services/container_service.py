# dockerrun/services/container_service.py
from uuid import UUID, uuid4
from typing import List, Mapping, Optional

from dockerrun.domain.container import ContainerHandle, ContainerRecord, ContainerStatus, now_millis
from dockerrun.domain.errors import (
    ContainerNotFoundError,
    InvalidInputError,
    InvalidStateError,
    PersistenceError,
    RuntimeInvocationError,
)
from dockerrun.domain.ports import CommandResult, ContainerRepository, ContainerRuntime
from dockerrun.services.auto_termination import AutoTerminationScheduler
from dockerrun.services.locks import KeyedLock
from dockerrun.services.registry import ContainerRegistry
from dockerrun.services.worker_pool import WorkerPool
from dockerrun.core.logging import get_logger

logger = get_logger(__name__)

ContainerRef = ContainerHandle | UUID


def _id_of(container: ContainerRef) -> UUID:
    return container.id if isinstance(container, ContainerHandle) else container


class ContainerService:
    """
    Lifecycle manager for containers run by a local runtime.

    Start is asynchronous: the record is persisted as STARTING and the
    handle returned before the runtime is invoked. Pause, unpause and
    terminate wait for the runtime. Every status change of a container
    happens while holding that container's lock.
    """

    def __init__(
        self,
        container_repo: ContainerRepository,
        docker_runtime: ContainerRuntime,
        pool: WorkerPool,
        scheduler: Optional[AutoTerminationScheduler] = None,
        *,
        name_prefix: str = "dockerrun-",
        error_message_limit: int = 1000,
        runtime_id_length: int = 64,
    ):
        self.container_repo = container_repo
        self.docker_runtime = docker_runtime
        self.pool = pool
        self.scheduler = scheduler or AutoTerminationScheduler(pool)
        self.registry = ContainerRegistry(container_repo)
        self.name_prefix = name_prefix
        self.error_message_limit = error_message_limit
        self.runtime_id_length = runtime_id_length
        self._locks = KeyedLock()

    # -------------------------------
    # Reads
    # -------------------------------
    async def get_container(self, container: ContainerRef) -> ContainerRecord:
        container_id = _id_of(container)
        record = await self.container_repo.read(container_id)
        if record is None:
            raise ContainerNotFoundError(container_id)
        return record

    async def get_all_containers(self) -> List[ContainerRecord]:
        return await self.registry.list_records()

    # -------------------------------
    # Docker lifecycle
    # -------------------------------
    async def start_container(
        self,
        image_reference: str,
        environment_variables: Optional[Mapping[str, str]] = None,
        auto_terminate_seconds: int = 0,
    ) -> ContainerHandle:
        if (
            isinstance(auto_terminate_seconds, bool)
            or not isinstance(auto_terminate_seconds, int)
            or auto_terminate_seconds < 0
        ):
            raise InvalidInputError(
                f"auto_terminate_seconds must be a non-negative integer, got {auto_terminate_seconds!r}"
            )
        if not image_reference or not image_reference.strip():
            raise InvalidInputError("image_reference must not be empty")

        record = ContainerRecord(
            id=uuid4(),
            image_reference=image_reference,
            environment_variables={str(k): str(v) for k, v in (environment_variables or {}).items()},
            status=ContainerStatus.STARTING,
            auto_terminate_seconds=auto_terminate_seconds,
            created_at=now_millis(),
        )
        await self.container_repo.write(record)
        logger.info("Starting container %s with image '%s'", record.id, image_reference)

        self.pool.submit(lambda: self._run_new_container(record.id))
        return record.handle

    async def pause_container(self, container: ContainerRef) -> None:
        container_id = _id_of(container)
        async with self._locks.hold(container_id):
            record = await self.get_container(container_id)
            runtime_id = self._require_runtime(record, ContainerStatus.RUNNING)

            result = await self.pool.run_blocking(self.docker_runtime.pause, runtime_id)
            if not result.ok:
                raise RuntimeInvocationError(container_id, "pause", result.exit_code, result.output)

            record.mark_paused()
            await self.container_repo.write(record)
        logger.info("Paused container %s", container_id)

    async def unpause_container(self, container: ContainerRef) -> None:
        container_id = _id_of(container)
        async with self._locks.hold(container_id):
            record = await self.get_container(container_id)
            runtime_id = self._require_runtime(record, ContainerStatus.PAUSED)

            result = await self.pool.run_blocking(self.docker_runtime.unpause, runtime_id)
            if not result.ok:
                raise RuntimeInvocationError(container_id, "unpause", result.exit_code, result.output)

            record.mark_unpaused()
            await self.container_repo.write(record)
        logger.info("Unpaused container %s", container_id)

    async def terminate_container(self, container: ContainerRef) -> None:
        container_id = _id_of(container)
        async with self._locks.hold(container_id):
            record = await self.get_container(container_id)

            if record.status == ContainerStatus.TERMINATED:
                logger.info("Container %s is already terminated", container_id)
                return

            if record.runtime_container_id:
                await self._destroy_runtime_container(container_id, record.runtime_container_id)

            self.scheduler.cancel(container_id)

            record.mark_terminated()
            await self.container_repo.write(record)
        logger.info("Terminated container %s", container_id)

    async def shutdown(self) -> None:
        """Drop pending auto-terminations and wait for in-flight jobs. Containers keep running."""
        self.scheduler.cancel_all()
        await self.pool.shutdown()

    # -------------------------------
    # Internal methods
    # -------------------------------
    def _require_runtime(self, record: ContainerRecord, expected: ContainerStatus) -> str:
        record.require(expected)
        if not record.runtime_container_id:
            raise InvalidStateError(
                record.id, record.status.value, expected.value, "no runtime container id assigned"
            )
        return record.runtime_container_id

    def _truncate(self, message: str) -> str:
        return message[: self.error_message_limit]

    async def _run_new_container(self, container_id: UUID) -> None:
        """
        Start job, run on the pool. Nobody is waiting for it, so every
        outcome ends up in the record.

        The runtime call happens outside the container's lock; only the
        status change is locked. A terminate that lands while ``docker run``
        is in flight wins, and whatever the runtime created is torn down.
        """
        try:
            initial = await self.get_container(container_id)
        except (ContainerNotFoundError, PersistenceError):
            logger.exception("Could not load container %s to start it", container_id)
            return
        if initial.status != ContainerStatus.STARTING:
            logger.info("Container %s left STARTING (%s) before it was run", container_id, initial.status.value)
            return

        runtime_id = None
        try:
            result: CommandResult = await self.pool.run_blocking(
                self.docker_runtime.run,
                name=f"{self.name_prefix}{container_id}",
                image=initial.image_reference,
                environment=initial.environment_variables,
            )
            if not result.ok:
                error = f"docker run failed (exit code {result.exit_code}): {result.output}"
            else:
                runtime_id = result.first_line(self.runtime_id_length)
                error = None if runtime_id else "docker run succeeded but returned no container id"
        except Exception as exc:
            logger.exception("Error starting container %s", container_id)
            error = f"Start exception: {exc}"

        async with self._locks.hold(container_id):
            try:
                record = await self.get_container(container_id)
            except (ContainerNotFoundError, PersistenceError) as exc:
                logger.exception("Could not reload container %s after docker run", container_id)
                if runtime_id:
                    await self._destroy_runtime_container(container_id, runtime_id)
                initial.mark_failed(self._truncate(f"Start exception: {exc}"))
                await self._write_from_job(initial)
                return

            if record.status != ContainerStatus.STARTING:
                logger.info("Container %s became %s while starting", container_id, record.status.value)
                if runtime_id:
                    await self._destroy_runtime_container(container_id, runtime_id)
                return

            if error is not None:
                logger.warning("Failed to start container %s: %s", container_id, error)
                record.mark_failed(self._truncate(error))
                await self._write_from_job(record)
                return

            record.mark_running(runtime_id)
            try:
                await self.container_repo.write(record)
            except PersistenceError as exc:
                # FAILED never carries a runtime id, so the runtime container has to go.
                logger.exception("Could not record container %s as running", container_id)
                await self._destroy_runtime_container(container_id, runtime_id)
                initial.mark_failed(self._truncate(f"Start exception: {exc}"))
                await self._write_from_job(initial)
                return

            logger.info("Container %s started with Docker ID: %s", container_id, runtime_id)

            if record.auto_terminate_seconds > 0:
                self.scheduler.register(
                    container_id,
                    record.auto_terminate_seconds,
                    lambda: self.terminate_container(container_id),
                )

    async def _write_from_job(self, record: ContainerRecord) -> None:
        try:
            await self.container_repo.write(record)
        except PersistenceError:
            logger.exception("Could not record status %s for container %s", record.status.value, record.id)

    async def _destroy_runtime_container(self, container_id: UUID, runtime_id: str) -> None:
        """stop then rm -f; failures are logged and otherwise ignored."""
        for command, call in (
            ("stop", lambda: self.docker_runtime.stop(runtime_id)),
            ("rm", lambda: self.docker_runtime.remove(runtime_id, force=True)),
        ):
            try:
                result = await self.pool.run_blocking(call)
            except Exception:
                logger.exception("docker %s raised for container %s (%s)", command, container_id, runtime_id)
                continue
            if not result.ok:
                logger.warning(
                    "docker %s failed for container %s (exit code %s): %s",
                    command, container_id, result.exit_code, result.output,
                )
