from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from databases import Database

from dockerrun.api import containers
from dockerrun.core.config import Settings, get_settings
from dockerrun.core.database import create_database
from dockerrun.core.logging import get_logger, configure_logger
from dockerrun.domain.ports import ContainerRepository, ContainerRuntime
from dockerrun.repositories.container_repository import SQLContainerRepository
from dockerrun.repositories.file_repository import JSONFileContainerRepository
from dockerrun.services.auto_termination import AutoTerminationScheduler
from dockerrun.services.container_service import ContainerService
from dockerrun.services.docker_runtime import DockerCLIRuntime, DockerSDKRuntime
from dockerrun.services.worker_pool import WorkerPool

logger = get_logger(__name__)


def build_runtime(settings: Settings) -> ContainerRuntime:
    if settings.RUNTIME_BACKEND == "sdk":
        return DockerSDKRuntime()
    return DockerCLIRuntime(settings.DOCKER_EXECUTABLE)


def build_repository(settings: Settings, database: Optional[Database] = None) -> ContainerRepository:
    if settings.STORAGE_BACKEND == "sql":
        if database is None:
            raise ValueError("SQL storage needs a database")
        return SQLContainerRepository(database)
    return JSONFileContainerRepository(settings.DATA_DIR)


def build_service(
    settings: Settings,
    container_repo: ContainerRepository,
    docker_runtime: Optional[ContainerRuntime] = None,
) -> ContainerService:
    pool = WorkerPool(max_workers=settings.WORKER_THREADS)
    return ContainerService(
        container_repo,
        docker_runtime or build_runtime(settings),
        pool,
        AutoTerminationScheduler(pool),
        name_prefix=settings.CONTAINER_NAME_PREFIX,
        error_message_limit=settings.ERROR_MESSAGE_LIMIT,
        runtime_id_length=settings.RUNTIME_ID_LENGTH,
    )


def create_app(settings: Optional[Settings] = None, service: Optional[ContainerService] = None) -> FastAPI:
    """
    Build the HTTP app. With ``service`` given it is used as is and the
    app owns nothing; otherwise storage, runtime and pool come from settings
    and live for the app's lifespan.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is not None:
            yield
            return

        configure_logger(get_logger(), settings.LOG_LEVEL, settings.LOG_FILE)

        database = None
        if settings.STORAGE_BACKEND == "sql":
            database = create_database(settings.DATABASE_URL)
            await database.connect()
        owned = build_service(settings, build_repository(settings, database))
        app.state.container_service = owned
        logger.info(
            "[STARTUP] dockerrun ready (storage=%s, runtime=%s)",
            settings.STORAGE_BACKEND, settings.RUNTIME_BACKEND,
        )
        try:
            yield
        finally:
            await owned.shutdown()
            if database is not None:
                await database.disconnect()
            logger.info("[SHUTDOWN] dockerrun stopped")

    app = FastAPI(title="dockerrun – local container lifecycle", lifespan=lifespan)
    if service is not None:
        app.state.container_service = service
    app.include_router(containers.router)
    return app


app = create_app()
