# smartbroker/modules/agencies/routers.py
from typing import List

from fastapi import APIRouter, Body, Depends, Path, Query, status

from smartbroker.core.security import CurrentActor
from smartbroker.models.api_common import PaginatedResponse
from .models import AddMemberAPI, AgencyCreateAPI, AgencyInDB, AgencyStats, AgencyUpdateAPI, TransferOwnershipAPI
from .services import AgencyService, get_agency_service

agencies_router = APIRouter()


@agencies_router.post(
    "",
    response_model=AgencyInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Create an agency owned by the caller",
    tags=["Agencies"],
)
async def create_agency(
    actor: CurrentActor,
    payload: AgencyCreateAPI = Body(...),
    service: AgencyService = Depends(get_agency_service),
):
    return await service.create(payload, actor)


@agencies_router.get("", response_model=PaginatedResponse[AgencyInDB], tags=["Agencies - Admin"])
async def list_agencies(
    actor: CurrentActor,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    service: AgencyService = Depends(get_agency_service),
):
    total, items = await service.list_all(actor, skip=skip, limit=limit)
    return PaginatedResponse[AgencyInDB](total_items=total, items=items, limit=limit, skip=skip)


@agencies_router.get("/mine", response_model=List[AgencyInDB], tags=["Agencies"])
async def list_my_agencies(actor: CurrentActor, service: AgencyService = Depends(get_agency_service)):
    """Agencies the caller owns or is a member of."""
    return await service.list_mine(actor)


@agencies_router.get("/{agency_id}", response_model=AgencyInDB, tags=["Agencies"])
async def get_agency(
    actor: CurrentActor,
    agency_id: str = Path(...),
    service: AgencyService = Depends(get_agency_service),
):
    return await service.get(agency_id, actor)


@agencies_router.patch("/{agency_id}", response_model=AgencyInDB, tags=["Agencies"])
async def update_agency(
    actor: CurrentActor,
    agency_id: str = Path(...),
    payload: AgencyUpdateAPI = Body(...),
    service: AgencyService = Depends(get_agency_service),
):
    return await service.update(agency_id, payload, actor)


@agencies_router.delete("/{agency_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Agencies - Admin"])
async def delete_agency(
    actor: CurrentActor,
    agency_id: str = Path(...),
    service: AgencyService = Depends(get_agency_service),
):
    await service.remove(agency_id, actor)


@agencies_router.post("/{agency_id}/members", response_model=AgencyInDB, tags=["Agencies"])
async def add_agency_member(
    actor: CurrentActor,
    agency_id: str = Path(...),
    payload: AddMemberAPI = Body(...),
    service: AgencyService = Depends(get_agency_service),
):
    return await service.add_member(agency_id, payload.user_id, actor)


@agencies_router.delete("/{agency_id}/members/{user_id}", response_model=AgencyInDB, tags=["Agencies"])
async def remove_agency_member(
    actor: CurrentActor,
    agency_id: str = Path(...),
    user_id: str = Path(...),
    service: AgencyService = Depends(get_agency_service),
):
    return await service.remove_member(agency_id, service.user_repo.parse_id(user_id), actor)


@agencies_router.post("/{agency_id}/transfer-ownership", response_model=AgencyInDB, tags=["Agencies - Admin"])
async def transfer_agency_ownership(
    actor: CurrentActor,
    agency_id: str = Path(...),
    payload: TransferOwnershipAPI = Body(...),
    service: AgencyService = Depends(get_agency_service),
):
    return await service.transfer_ownership(agency_id, payload.new_owner_id, actor)


@agencies_router.get("/{agency_id}/stats", response_model=AgencyStats, tags=["Agencies"])
async def get_agency_stats(
    actor: CurrentActor,
    agency_id: str = Path(...),
    service: AgencyService = Depends(get_agency_service),
):
    return await service.stats(agency_id, actor)
