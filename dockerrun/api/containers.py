from fastapi import APIRouter, Depends, HTTPException, Request, status
from uuid import UUID
from typing import List

from dockerrun.domain.errors import (
    ContainerNotFoundError,
    InvalidInputError,
    InvalidStateError,
    PersistenceError,
    RuntimeInvocationError,
)
from dockerrun.services.container_service import ContainerService
from dockerrun.schemas.container import (
    ContainerCreateRequest,
    ContainerResponse,
)


router = APIRouter(prefix="/containers", tags=["containers"])


def get_container_service(request: Request) -> ContainerService:
    return request.app.state.container_service


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ContainerNotFoundError):
        return HTTPException(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status.HTTP_409_CONFLICT, str(exc))
    if isinstance(exc, InvalidInputError):
        return HTTPException(422, str(exc))
    if isinstance(exc, RuntimeInvocationError):
        return HTTPException(status.HTTP_502_BAD_GATEWAY, str(exc))
    return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


_HANDLED = (ContainerNotFoundError, InvalidStateError, InvalidInputError, RuntimeInvocationError, PersistenceError)


@router.post("", response_model=ContainerResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_container(
    payload: ContainerCreateRequest,
    service: ContainerService = Depends(get_container_service),
):
    try:
        handle = await service.start_container(
            payload.image_reference,
            payload.environment_variables,
            payload.auto_terminate_seconds,
        )
        return ContainerResponse.from_record(await service.get_container(handle))
    except _HANDLED as exc:
        raise _http_error(exc)


@router.get("", response_model=List[ContainerResponse])
async def list_containers(service: ContainerService = Depends(get_container_service)):
    try:
        return [ContainerResponse.from_record(r) for r in await service.get_all_containers()]
    except _HANDLED as exc:
        raise _http_error(exc)


@router.get("/{container_id}", response_model=ContainerResponse)
async def get_container(container_id: UUID, service: ContainerService = Depends(get_container_service)):
    try:
        return ContainerResponse.from_record(await service.get_container(container_id))
    except _HANDLED as exc:
        raise _http_error(exc)


@router.post("/{container_id}/pause", response_model=ContainerResponse)
async def pause_container(container_id: UUID, service: ContainerService = Depends(get_container_service)):
    try:
        await service.pause_container(container_id)
        return ContainerResponse.from_record(await service.get_container(container_id))
    except _HANDLED as exc:
        raise _http_error(exc)


@router.post("/{container_id}/unpause", response_model=ContainerResponse)
async def unpause_container(container_id: UUID, service: ContainerService = Depends(get_container_service)):
    try:
        await service.unpause_container(container_id)
        return ContainerResponse.from_record(await service.get_container(container_id))
    except _HANDLED as exc:
        raise _http_error(exc)


@router.post("/{container_id}/terminate", response_model=ContainerResponse)
async def terminate_container(container_id: UUID, service: ContainerService = Depends(get_container_service)):
    try:
        await service.terminate_container(container_id)
        return ContainerResponse.from_record(await service.get_container(container_id))
    except _HANDLED as exc:
        raise _http_error(exc)
