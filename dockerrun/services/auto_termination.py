import asyncio
from uuid import UUID
from typing import Awaitable, Callable, Dict, Optional

from dockerrun.services.worker_pool import WorkerPool
from dockerrun.core.logging import get_logger

logger = get_logger(__name__)

Action = Callable[[], Awaitable[None]]


class _PendingAction:
    __slots__ = ("action", "delay", "timer")

    def __init__(self, action: Action, delay: float):
        self.action = action
        self.delay = delay
        self.timer: Optional[asyncio.TimerHandle] = None


class AutoTerminationScheduler:
    """
    At most one pending delayed action per container id.

    The map is only touched on the event loop thread and never across an
    await, so register, cancel and fire cannot interleave for an id.
    """

    def __init__(self, pool: WorkerPool):
        self._pool = pool
        self._pending: Dict[UUID, _PendingAction] = {}

    def register(self, container_id: UUID, delay_seconds: float, action: Action) -> None:
        self.cancel(container_id)
        entry = _PendingAction(action, delay_seconds)
        entry.timer = self._pool.call_later(delay_seconds, lambda: self._fire(container_id, entry))
        self._pending[container_id] = entry
        logger.info("Auto-termination for %s scheduled in %ss", container_id, delay_seconds)

    def cancel(self, container_id: UUID) -> bool:
        entry = self._pending.pop(container_id, None)
        if entry is None:
            return False
        if entry.timer is not None:
            entry.timer.cancel()
        logger.info("Auto-termination for %s cancelled", container_id)
        return True

    def cancel_all(self) -> None:
        for container_id in list(self._pending):
            self.cancel(container_id)

    def pending(self, container_id: UUID) -> bool:
        return container_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def _fire(self, container_id: UUID, entry: _PendingAction) -> None:
        # Cancelled or replaced between the timer going off and this job starting.
        if self._pending.get(container_id) is not entry:
            return
        del self._pending[container_id]

        logger.info("Auto-terminating container %s after %ss", container_id, entry.delay)
        try:
            await entry.action()
        except Exception:
            logger.exception("Auto-terminate error for %s", container_id)
