from uuid import UUID, uuid4
from pathlib import Path
import aiofiles
import aiofiles.os

from dockerrun.domain.container import ContainerRecord
from dockerrun.domain.errors import MalformedRecordError, PersistenceError
from dockerrun.domain.ports import ContainerRepository
from dockerrun.schemas.container import encode_record, decode_record
from dockerrun.core.logging import get_logger

logger = get_logger(__name__)

CONFIG_FILENAME = "config.json"


class JSONFileContainerRepository(ContainerRepository):
    """
    One directory per container under ``<data_dir>/containers``, holding a
    single ``config.json``. Writes land in a temp file that is renamed over
    the old one, so a reader sees either the previous record or the new one.
    """

    def __init__(self, data_dir: Path):
        self.containers_dir = Path(data_dir) / "containers"
        self.containers_dir.mkdir(parents=True, exist_ok=True)

    def _config_file(self, container_id: UUID) -> Path:
        return self.containers_dir / str(container_id) / CONFIG_FILENAME

    async def write(self, record: ContainerRecord) -> None:
        target = self._config_file(record.id)
        tmp = target.with_name(f".{CONFIG_FILENAME}.{uuid4().hex}.tmp")
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(tmp, "w", encoding="utf-8") as out_file:
                await out_file.write(encode_record(record))
                await out_file.flush()
            await aiofiles.os.replace(tmp, target)
        except OSError as exc:
            try:
                await aiofiles.os.remove(tmp)
            except FileNotFoundError:
                pass
            raise PersistenceError(f"Failed to write {target}: {exc}") from exc

    async def read(self, container_id: UUID) -> ContainerRecord | None:
        config_file = self._config_file(container_id)
        try:
            async with aiofiles.open(config_file, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise MalformedRecordError(container_id, f"not valid UTF-8 ({exc.reason})") from exc
        except OSError as exc:
            raise PersistenceError(f"Failed to read {config_file}: {exc}") from exc

        return decode_record(container_id, raw)

    async def list_ids(self) -> list[UUID]:
        try:
            names = await aiofiles.os.listdir(self.containers_dir)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise PersistenceError(f"Failed to list {self.containers_dir}: {exc}") from exc

        ids: list[UUID] = []
        for name in sorted(names):
            if not (self.containers_dir / name).is_dir():
                continue
            try:
                ids.append(UUID(name))
            except ValueError:
                logger.warning("Skipping non-container directory %s", name)
        return ids
