from uuid import UUID
from typing import List

from dockerrun.domain.container import ContainerRecord
from dockerrun.domain.errors import MalformedRecordError
from dockerrun.domain.ports import ContainerRepository
from dockerrun.core.logging import get_logger

logger = get_logger(__name__)


class ContainerRegistry:
    """Best-effort enumeration of the containers a store knows about."""

    def __init__(self, repo: ContainerRepository):
        self.repo = repo

    async def list_ids(self) -> List[UUID]:
        return await self.repo.list_ids()

    async def list_records(self) -> List[ContainerRecord]:
        records: List[ContainerRecord] = []
        for container_id in await self.repo.list_ids():
            try:
                record = await self.repo.read(container_id)
            except MalformedRecordError as e:
                logger.warning("Skipping container %s: %s", container_id, e)
                continue
            if record is None:
                # Listed but gone, or a directory without config yet.
                continue
            records.append(record)
        return records
