import subprocess
from typing import Callable, List, Mapping, Optional
from docker import from_env, DockerClient
from docker.models.containers import Container
from docker.errors import NotFound, DockerException

from dockerrun.domain.ports import CommandResult, ContainerRuntime
from dockerrun.core.logging import get_logger

logger = get_logger(__name__)

# docker CLI exit code for errors raised by the daemon itself
DAEMON_ERROR_EXIT = 125


class DockerCLIRuntime(ContainerRuntime):
    """Drives the docker command line. stdout and stderr are combined, as a terminal would show them."""

    def __init__(self, executable: str = "docker"):
        self.executable = executable

    def _execute(self, *args: str) -> CommandResult:
        cmd = [self.executable, *args]
        logger.debug("Running %s", " ".join(cmd))
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        return CommandResult(exit_code=proc.returncode, output=(proc.stdout or "").strip())

    # -------------------------------
    # Container lifecycle
    # -------------------------------
    def run(self, *, name: str, image: str, environment: Mapping[str, str]) -> CommandResult:
        env_args: List[str] = []
        for key, value in environment.items():
            env_args += ["-e", f"{key}={value}"]
        return self._execute("run", "-d", "--name", name, *env_args, image)

    def pause(self, runtime_id: str) -> CommandResult:
        return self._execute("pause", runtime_id)

    def unpause(self, runtime_id: str) -> CommandResult:
        return self._execute("unpause", runtime_id)

    def stop(self, runtime_id: str) -> CommandResult:
        return self._execute("stop", runtime_id)

    def remove(self, runtime_id: str, *, force: bool = True) -> CommandResult:
        if force:
            return self._execute("rm", "-f", runtime_id)
        return self._execute("rm", runtime_id)


class DockerSDKRuntime(ContainerRuntime):
    """
    Same contract over the Docker Engine API. SDK exceptions become
    non-zero results so callers only ever deal with exit codes.
    """

    def __init__(self, docker_client: Optional[DockerClient] = None):
        self.docker_client = docker_client or from_env()

    def _on_container(self, runtime_id: str, op: Callable[[Container], None], done: str) -> CommandResult:
        try:
            container = self.docker_client.containers.get(runtime_id)
            op(container)
            return CommandResult(0, done)
        except NotFound:
            return CommandResult(1, f"Error response from daemon: No such container: {runtime_id}")
        except DockerException as e:
            return CommandResult(DAEMON_ERROR_EXIT, str(e))

    # -------------------------------
    # Container lifecycle
    # -------------------------------
    def run(self, *, name: str, image: str, environment: Mapping[str, str]) -> CommandResult:
        try:
            docker_container = self.docker_client.containers.run(
                image,
                detach=True,
                name=name,
                environment=dict(environment),
            )
            return CommandResult(0, docker_container.id)
        except DockerException as e:
            return CommandResult(DAEMON_ERROR_EXIT, f"Docker run failed: {e}")

    def pause(self, runtime_id: str) -> CommandResult:
        return self._on_container(runtime_id, lambda c: c.pause(), runtime_id)

    def unpause(self, runtime_id: str) -> CommandResult:
        return self._on_container(runtime_id, lambda c: c.unpause(), runtime_id)

    def stop(self, runtime_id: str) -> CommandResult:
        return self._on_container(runtime_id, lambda c: c.stop(), runtime_id)

    def remove(self, runtime_id: str, *, force: bool = True) -> CommandResult:
        return self._on_container(runtime_id, lambda c: c.remove(force=force), runtime_id)
