import json
from uuid import UUID
from databases import Database
from sqlalchemy import select, insert, update

from dockerrun.models.db import ContainerDB
from dockerrun.domain.container import ContainerRecord
from dockerrun.domain.errors import PersistenceError, MalformedRecordError
from dockerrun.domain.ports import ContainerRepository
from dockerrun.schemas.container import ContainerDocument
from dockerrun.core.logging import get_logger

logger = get_logger(__name__)


class SQLContainerRepository(ContainerRepository):
    def __init__(self, database: Database):
        self.database = database

    async def write(self, record: ContainerRecord) -> None:
        values = dict(
            image_reference=record.image_reference,
            environment_variables=json.dumps(record.environment_variables, sort_keys=True),
            status=record.status.value,
            auto_terminate_seconds=record.auto_terminate_seconds,
            created_at=record.created_at,
            error_message=record.error_message,
            runtime_container_id=record.runtime_container_id,
        )
        try:
            existing = await self.database.fetch_one(
                select(ContainerDB.id).where(ContainerDB.id == str(record.id))
            )
            if existing:
                await self.database.execute(
                    update(ContainerDB)
                    .where(ContainerDB.id == str(record.id))
                    .values(**values)
                )
            else:
                await self.database.execute(
                    insert(ContainerDB).values(id=str(record.id), **values)
                )
        except Exception as exc:
            raise PersistenceError(f"Failed to write container {record.id}: {exc}") from exc

    async def read(self, container_id: UUID) -> ContainerRecord | None:
        try:
            row = await self.database.fetch_one(
                select(ContainerDB).where(ContainerDB.id == str(container_id))
            )
        except Exception as exc:
            raise PersistenceError(f"Failed to read container {container_id}: {exc}") from exc

        if not row:
            return None

        try:
            document = ContainerDocument(
                image_reference=row["image_reference"],
                environment_variables=json.loads(row["environment_variables"] or "{}"),
                status=row["status"],
                auto_terminate_seconds=row["auto_terminate_seconds"],
                created_at=row["created_at"],
                error_message=row["error_message"],
                runtime_container_id=row["runtime_container_id"],
            )
        except ValueError as exc:
            # pydantic's ValidationError and json's JSONDecodeError are both ValueErrors
            raise MalformedRecordError(container_id, str(exc)) from exc

        return document.to_record(container_id)

    async def list_ids(self) -> list[UUID]:
        try:
            rows = await self.database.fetch_all(select(ContainerDB.id))
        except Exception as exc:
            raise PersistenceError(f"Failed to list containers: {exc}") from exc

        ids: list[UUID] = []
        for r in rows:
            try:
                ids.append(UUID(r["id"]))
            except ValueError:
                logger.warning("Skipping container row with invalid id %r", r["id"])
        return ids
