import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, TypeVar

from dockerrun.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
Job = Callable[[], Awaitable[None]]


class WorkerPool:
    """
    Shared scheduling for one service instance.

    Jobs are coroutines run on the event loop, either now (``submit``) or
    after a delay (``call_later``). Anything that blocks, such as a runtime
    invocation, goes through ``run_blocking`` onto the pool's threads.
    """

    def __init__(self, max_workers: int = 2, thread_name_prefix: str = "dockerrun-worker"):
        if max_workers < 2:
            raise ValueError("WorkerPool needs at least two threads")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    def submit(self, job: Job) -> asyncio.Task:
        if self._closed:
            raise RuntimeError("WorkerPool is shut down")
        task = asyncio.get_running_loop().create_task(job())
        self._tasks.add(task)
        task.add_done_callback(self._job_done)
        return task

    def call_later(self, delay: float, job: Job) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(delay, 0), self._fire, job)

    async def run_blocking(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))

    async def join(self) -> None:
        """Wait until every submitted job, including ones submitted meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.join()
        self._closed = True
        self._executor.shutdown(wait=True)

    def _fire(self, job: Job) -> None:
        if self._closed:
            return
        self.submit(job)

    def _job_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background job failed", exc_info=exc)
