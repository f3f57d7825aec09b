from typing import Protocol, List, Mapping
from uuid import UUID
from dataclasses import dataclass

from dockerrun.domain.container import ContainerRecord


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def first_line(self, limit: int) -> str:
        lines = self.output.strip().splitlines()
        return lines[0].strip()[:limit] if lines else ""


class ContainerRepository(Protocol):
    async def write(self, record: ContainerRecord) -> None:
        """Persist the full record, replacing whatever was stored for its id."""
        ...

    async def read(self, container_id: UUID) -> ContainerRecord | None:
        """Return the stored record, or None if the id is unknown."""
        ...

    async def list_ids(self) -> List[UUID]:
        """Every id currently known to the store."""
        ...


class ContainerRuntime(Protocol):
    # -------------------------------
    # Containers
    # -------------------------------
    def run(self, *, name: str, image: str, environment: Mapping[str, str]) -> CommandResult:
        """Create and start a detached container. Output's first line is its runtime id."""
        ...

    def pause(self, runtime_id: str) -> CommandResult:
        """Freeze every process in a running container."""
        ...

    def unpause(self, runtime_id: str) -> CommandResult:
        """Resume a paused container."""
        ...

    def stop(self, runtime_id: str) -> CommandResult:
        """Stop a running container."""
        ...

    def remove(self, runtime_id: str, *, force: bool = True) -> CommandResult:
        """Remove a container completely."""
        ...
