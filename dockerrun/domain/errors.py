from uuid import UUID


class ContainerError(Exception):
    """Base class for every error raised by the lifecycle manager."""


class InvalidInputError(ContainerError, ValueError):
    pass


class ContainerNotFoundError(ContainerError, LookupError):
    def __init__(self, container_id: UUID):
        self.container_id = container_id
        super().__init__(f"Container {container_id} not found")


class InvalidStateError(ContainerError):
    def __init__(self, container_id: UUID, actual: str, expected: str, detail: str | None = None):
        self.container_id = container_id
        self.actual = actual
        self.expected = expected
        message = f"Container {container_id}: current status is {actual}, expected {expected}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class RuntimeInvocationError(ContainerError):
    def __init__(self, container_id: UUID, command: str, exit_code: int, output: str):
        self.container_id = container_id
        self.command = command
        self.exit_code = exit_code
        self.output = output
        super().__init__(
            f"docker {command} failed for container {container_id} "
            f"(exit code {exit_code}): {output}"
        )


class PersistenceError(ContainerError):
    pass


class MalformedRecordError(PersistenceError):
    def __init__(self, container_id: UUID | str, reason: str):
        self.container_id = container_id
        super().__init__(f"Malformed record for container {container_id}: {reason}")
