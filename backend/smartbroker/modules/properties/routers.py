# smartbroker/modules/properties/routers.py
from fastapi import APIRouter, Body, Depends, Path, Query, status

from smartbroker.core.security import CurrentActor
from smartbroker.models.api_common import PaginatedResponse
from .models import PropertyCreateAPI, PropertyFilters, PropertyInDB, PropertyUpdateAPI
from .services import PropertyService, get_property_service

properties_router = APIRouter()


@properties_router.post(
    "",
    response_model=PropertyInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Create a property",
    tags=["Properties"],
)
async def create_property(
    actor: CurrentActor,
    payload: PropertyCreateAPI = Body(...),
    service: PropertyService = Depends(get_property_service),
):
    return await service.create(payload, actor)


@properties_router.get("", response_model=PaginatedResponse[PropertyInDB], tags=["Properties"])
async def list_properties(
    actor: CurrentActor,
    filters: PropertyFilters = Depends(),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    service: PropertyService = Depends(get_property_service),
):
    """Lists active properties visible to the caller. Agents only see the ones they created."""
    total, items = await service.list(actor, filters, skip=skip, limit=limit)
    return PaginatedResponse[PropertyInDB](total_items=total, items=items, limit=limit, skip=skip)


@properties_router.get("/{property_id}", response_model=PropertyInDB, tags=["Properties"])
async def get_property(
    actor: CurrentActor,
    property_id: str = Path(...),
    service: PropertyService = Depends(get_property_service),
):
    return await service.get(property_id, actor)


@properties_router.patch("/{property_id}", response_model=PropertyInDB, tags=["Properties"])
async def update_property(
    actor: CurrentActor,
    property_id: str = Path(...),
    payload: PropertyUpdateAPI = Body(...),
    service: PropertyService = Depends(get_property_service),
):
    return await service.update(property_id, payload, actor)


@properties_router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Properties"])
async def delete_property(
    actor: CurrentActor,
    property_id: str = Path(...),
    service: PropertyService = Depends(get_property_service),
):
    await service.remove(property_id, actor)
