from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError
from pydantic.alias_generators import to_camel
from uuid import UUID
from typing import Dict, Optional

from dockerrun.domain.container import ContainerRecord, ContainerStatus
from dockerrun.domain.errors import MalformedRecordError


class ContainerDocument(BaseModel):
    """On-disk form of a record. The id is not part of it; the store keys by id."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    image_reference: str
    environment_variables: Dict[str, str] = Field(default_factory=dict)
    status: ContainerStatus
    auto_terminate_seconds: int = Field(0, ge=0)
    created_at: int
    error_message: Optional[str] = None
    runtime_container_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: ContainerRecord) -> "ContainerDocument":
        return cls(
            image_reference=record.image_reference,
            environment_variables=dict(record.environment_variables),
            status=record.status,
            auto_terminate_seconds=record.auto_terminate_seconds,
            created_at=record.created_at,
            error_message=record.error_message,
            runtime_container_id=record.runtime_container_id,
        )

    def to_record(self, container_id: UUID) -> ContainerRecord:
        return ContainerRecord(
            id=container_id,
            image_reference=self.image_reference,
            environment_variables=dict(self.environment_variables),
            status=self.status,
            auto_terminate_seconds=self.auto_terminate_seconds,
            created_at=self.created_at,
            error_message=self.error_message or None,
            runtime_container_id=self.runtime_container_id or None,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


def encode_record(record: ContainerRecord) -> str:
    return ContainerDocument.from_record(record).to_json()


def decode_record(container_id: UUID, raw: str | bytes) -> ContainerRecord:
    try:
        return ContainerDocument.model_validate_json(raw).to_record(container_id)
    except ValidationError as e:
        raise MalformedRecordError(container_id, str(e)) from e


# -------------------------------
# HTTP
# -------------------------------
class ContainerCreateRequest(BaseModel):
    image_reference: str = Field(..., min_length=1, description="Image to run, e.g. library/nginx:latest")
    environment_variables: Dict[str, str] = Field(default_factory=dict)
    auto_terminate_seconds: StrictInt = Field(0, ge=0, description="0 disables auto-termination")


class ContainerResponse(BaseModel):
    id: UUID
    image_reference: str
    environment_variables: Dict[str, str]
    status: ContainerStatus
    auto_terminate_seconds: int
    created_at: int
    error_message: Optional[str] = None
    runtime_container_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: ContainerRecord) -> "ContainerResponse":
        return cls(
            id=record.id,
            image_reference=record.image_reference,
            environment_variables=record.environment_variables,
            status=record.status,
            auto_terminate_seconds=record.auto_terminate_seconds,
            created_at=record.created_at,
            error_message=record.error_message,
            runtime_container_id=record.runtime_container_id,
        )
