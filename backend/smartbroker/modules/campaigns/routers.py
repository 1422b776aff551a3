# smartbroker/modules/campaigns/routers.py
from fastapi import APIRouter, Body, Depends, Path, Query, status

from smartbroker.core.security import CurrentActor
from smartbroker.models.api_common import PaginatedResponse
from .models import CampaignCreateAPI, CampaignFilters, CampaignInDB, CampaignUpdateAPI
from .services import CampaignService, get_campaign_service

campaigns_router = APIRouter()


@campaigns_router.post(
    "",
    response_model=CampaignInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Create a WhatsApp campaign",
    tags=["Campaigns"],
)
async def create_campaign(
    actor: CurrentActor,
    payload: CampaignCreateAPI = Body(...),
    service: CampaignService = Depends(get_campaign_service),
):
    """With `schedule.send_immediately` the campaign is scheduled and delivery starts in the background."""
    return await service.create(payload, actor)


@campaigns_router.get("", response_model=PaginatedResponse[CampaignInDB], tags=["Campaigns"])
async def list_campaigns(
    actor: CurrentActor,
    filters: CampaignFilters = Depends(),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    service: CampaignService = Depends(get_campaign_service),
):
    total, items = await service.list(actor, filters, skip=skip, limit=limit)
    return PaginatedResponse[CampaignInDB](total_items=total, items=items, limit=limit, skip=skip)


@campaigns_router.get("/{campaign_id}", response_model=CampaignInDB, tags=["Campaigns"])
async def get_campaign(
    actor: CurrentActor,
    campaign_id: str = Path(...),
    service: CampaignService = Depends(get_campaign_service),
):
    return await service.get(campaign_id, actor)


@campaigns_router.patch("/{campaign_id}", response_model=CampaignInDB, tags=["Campaigns"])
async def update_campaign(
    actor: CurrentActor,
    campaign_id: str = Path(...),
    payload: CampaignUpdateAPI = Body(...),
    service: CampaignService = Depends(get_campaign_service),
):
    return await service.update(campaign_id, payload, actor)


@campaigns_router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Campaigns"])
async def delete_campaign(
    actor: CurrentActor,
    campaign_id: str = Path(...),
    service: CampaignService = Depends(get_campaign_service),
):
    await service.remove(campaign_id, actor)


@campaigns_router.post(
    "/{campaign_id}/execute",
    response_model=CampaignInDB,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Campaigns"],
)
async def execute_campaign(
    actor: CurrentActor,
    campaign_id: str = Path(...),
    service: CampaignService = Depends(get_campaign_service),
):
    """Starts delivery in the background. Poll the campaign to follow `status` and `statistics`."""
    return await service.execute(campaign_id, actor)
