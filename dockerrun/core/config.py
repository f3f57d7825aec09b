from pathlib import Path
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    DATA_DIR: Path = Field(
        default=Path("storage"),
        description="Root of the JSON file store (one directory per container)"
    )

    STORAGE_BACKEND: Literal["file", "sql"] = "file"

    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./dockerrun.db",
        description="Async database URL used when STORAGE_BACKEND is 'sql'"
    )

    RUNTIME_BACKEND: Literal["cli", "sdk"] = "cli"
    DOCKER_EXECUTABLE: str = "docker"
    CONTAINER_NAME_PREFIX: str = "dockerrun-"

    WORKER_THREADS: int = Field(default=2, ge=2)

    ERROR_MESSAGE_LIMIT: int = Field(default=1000, gt=0)
    RUNTIME_ID_LENGTH: int = Field(default=64, gt=0)

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_prefix="DOCKERRUN_",
        env_file=".env",
        extra="ignore",
    )


def get_settings() -> Settings:
    return Settings()
