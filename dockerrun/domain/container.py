import time
from enum import Enum
from uuid import UUID, uuid4
from dataclasses import dataclass, field

from dockerrun.domain.errors import InvalidStateError


class ContainerStatus(str, Enum):
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    FAILED = "FAILED"
    TERMINATED = "TERMINATED"


# Every status may also move to TERMINATED; see ContainerRecord.mark_terminated.
TRANSITIONS: dict[ContainerStatus, frozenset[ContainerStatus]] = {
    ContainerStatus.STARTING: frozenset({ContainerStatus.RUNNING, ContainerStatus.FAILED}),
    ContainerStatus.RUNNING: frozenset({ContainerStatus.PAUSED}),
    ContainerStatus.PAUSED: frozenset({ContainerStatus.RUNNING}),
    ContainerStatus.FAILED: frozenset(),
    ContainerStatus.TERMINATED: frozenset(),
}


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ContainerHandle:
    """Reference to a container. Carries nothing but its id."""
    id: UUID

    def __str__(self) -> str:
        return str(self.id)


@dataclass
class ContainerRecord:
    image_reference: str
    environment_variables: dict[str, str] = field(default_factory=dict)
    status: ContainerStatus = ContainerStatus.STARTING
    auto_terminate_seconds: int = 0
    created_at: int = field(default_factory=now_millis)
    error_message: str | None = None
    runtime_container_id: str | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def handle(self) -> ContainerHandle:
        return ContainerHandle(self.id)

    def require(self, expected: ContainerStatus) -> None:
        if self.status != expected:
            raise InvalidStateError(self.id, self.status.value, expected.value)

    def _move_to(self, target: ContainerStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise InvalidStateError(self.id, self.status.value, f"a status that allows {target.value}")
        self.status = target

    # -------------------------------
    # Transitions
    # -------------------------------
    def mark_running(self, runtime_container_id: str) -> None:
        self._move_to(ContainerStatus.RUNNING)
        self.runtime_container_id = runtime_container_id

    def mark_failed(self, error_message: str) -> None:
        self._move_to(ContainerStatus.FAILED)
        self.error_message = error_message

    def mark_paused(self) -> None:
        self._move_to(ContainerStatus.PAUSED)

    def mark_unpaused(self) -> None:
        self._move_to(ContainerStatus.RUNNING)

    def mark_terminated(self) -> None:
        # Any status may terminate; the runtime id stays as an audit trail.
        self.status = ContainerStatus.TERMINATED
        self.error_message = None
