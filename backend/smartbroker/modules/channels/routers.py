# smartbroker/modules/channels/routers.py
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from smartbroker.core.security import CurrentActor
from .models import ChannelCreateAPI, ChannelInDB
from .services import ChannelService, get_channel_service

channels_router = APIRouter()


@channels_router.post(
    "",
    response_model=ChannelInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Register a WhatsApp instance for the agency",
    tags=["Channels"],
)
async def create_channel(
    actor: CurrentActor,
    payload: ChannelCreateAPI = Body(...),
    service: ChannelService = Depends(get_channel_service),
):
    return await service.create(payload, actor)


@channels_router.get("", response_model=List[ChannelInDB], tags=["Channels"])
async def list_channels(
    actor: CurrentActor,
    agency_id: Optional[str] = Query(None),
    service: ChannelService = Depends(get_channel_service),
):
    target = service.channel_repo.parse_id(agency_id) if agency_id else None
    return await service.list(actor, agency_id=target)


@channels_router.delete("/{instance_name}", response_model=ChannelInDB, tags=["Channels"])
async def deactivate_channel(
    actor: CurrentActor,
    instance_name: str = Path(...),
    service: ChannelService = Depends(get_channel_service),
):
    return await service.deactivate(instance_name, actor)
