# paygate/api/endpoints/resources.py
from fastapi import APIRouter, Depends, HTTPException, Path, status
from typing import Any
import logging

from paygate.api.deps import get_registry
from paygate.api.models.resource import (
    MessageResponse,
    ResourceCreateRequest,
    ResourceListResponse,
    ResourceResponse,
    ResourceUpdateRequest,
)
from paygate.core.exceptions import GatewayError
from paygate.registry.base import ResourceRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=ResourceListResponse, summary="List Protected Resources")
async def list_resources(registry: ResourceRegistry = Depends(get_registry)) -> Any:
    resources = registry.list()
    return ResourceListResponse(data=resources, count=len(resources))


@router.post(
    "",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a Protected Resource"
)
async def create_resource(
    body: ResourceCreateRequest,
    registry: ResourceRegistry = Depends(get_registry)
) -> Any:
    """
    Registers a new protected origin.

    Raises:
        HTTPException: 400 for a malformed id or missing fields, 409 if the id is taken
    """
    fields = body.model_dump(exclude={"id"}, exclude_none=True)
    try:
        resource = registry.create(body.id, fields)
    except GatewayError as e:
        logger.warning(f"Rejected resource registration for {body.id}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return ResourceResponse(message="Protected website added successfully", data=resource)


@router.get("/{resource_id:path}", response_model=ResourceResponse, summary="Get a Protected Resource")
async def get_resource(
    resource_id: str = Path(..., description="Origin of the resource, URL-encoded or raw."),
    registry: ResourceRegistry = Depends(get_registry)
) -> Any:
    try:
        return ResourceResponse(data=registry.get(resource_id))
    except GatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{resource_id:path}", response_model=ResourceResponse, summary="Update a Protected Resource")
async def update_resource(
    body: ResourceUpdateRequest,
    resource_id: str = Path(..., description="Origin of the resource, URL-encoded or raw."),
    registry: ResourceRegistry = Depends(get_registry)
) -> Any:
    """Partial update: only the fields present in the body change."""
    try:
        resource = registry.update(resource_id, body.model_dump(exclude_none=True))
    except GatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return ResourceResponse(message="Protected website updated successfully", data=resource)


@router.delete("/{resource_id:path}", response_model=MessageResponse, summary="Delete a Protected Resource")
async def delete_resource(
    resource_id: str = Path(..., description="Origin of the resource, URL-encoded or raw."),
    registry: ResourceRegistry = Depends(get_registry)
) -> Any:
    try:
        registry.delete(resource_id)
    except GatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return MessageResponse(message="Protected website deleted successfully")
