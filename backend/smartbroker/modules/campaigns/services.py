# smartbroker/modules/campaigns/services.py
from typing import List, Tuple

from bson import ObjectId
from fastapi import Depends
from loguru import logger

from smartbroker.core.authorization import Action, Actor, ensure_allowed, scoped_query
from smartbroker.core.config import settings
from smartbroker.core.exceptions import BadRequestError, NotFoundError
from smartbroker.models.api_common import utcnow
from smartbroker.modules.agencies.repository import AgencyRepository, get_agency_repository
from smartbroker.modules.agencies.services import resolve_target_agency
from smartbroker.modules.channels.services import ChannelService, get_channel_service
from smartbroker.modules.contacts.repository import ContactRepository, get_contact_repository
from .executor import CampaignExecutor, get_campaign_executor
from .models import (
    MANUAL_TRANSITIONS,
    CampaignAudience,
    CampaignCreateAPI,
    CampaignFilters,
    CampaignInDB,
    CampaignStatistics,
    CampaignUpdateAPI,
)
from .repository import CampaignRepository, get_campaign_repository


class CampaignService:
    def __init__(
        self,
        campaign_repo: CampaignRepository,
        contact_repo: ContactRepository,
        agency_repo: AgencyRepository,
        channel_service: ChannelService,
        executor: CampaignExecutor,
    ):
        self.campaign_repo = campaign_repo
        self.contact_repo = contact_repo
        self.agency_repo = agency_repo
        self.channel_service = channel_service
        self.executor = executor

    async def _get_active(self, campaign_id: str | ObjectId) -> CampaignInDB:
        campaign = await self.campaign_repo.get_by_id(self.campaign_repo.parse_id(campaign_id))
        if campaign is None or not campaign.is_active:
            raise NotFoundError("Campaign not found")
        return campaign

    async def audience_count(self, audience: CampaignAudience, agency_id: ObjectId) -> int:
        """Tamanho informativo da audiência; o valor definitivo é calculado na execução."""
        query = self.contact_repo.audience_query(
            agency_id,
            contact_ids=audience.specific_contact_ids,
            statuses=audience.target_status,
            tags=audience.target_tags,
        )
        return await self.contact_repo.count(query)

    async def create(self, payload: CampaignCreateAPI, actor: Actor) -> CampaignInDB:
        agency_id = await resolve_target_agency(self.agency_repo, actor, payload.agency_id)
        log = logger.bind(service="CampaignService", agency_id=str(agency_id))

        data = payload.model_dump(exclude={"agency_id"})
        data.update(
            agency_id=agency_id,
            created_by=actor.user_id,
            is_active=True,
            status="draft",
            channel=payload.channel or await self.channel_service.resolve_for_agency(agency_id),
            statistics=CampaignStatistics(
                total_contacts=await self.audience_count(payload.audience, agency_id)
            ).model_dump(),
        )
        if payload.rate_limit_ms is None:
            data["rate_limit_ms"] = settings.CAMPAIGN_DEFAULT_RATE_LIMIT_MS

        schedule = payload.schedule
        if schedule.send_immediately:
            data.update(status="scheduled", next_execution_date=utcnow())
        elif schedule.start_date:
            data.update(status="scheduled", next_execution_date=schedule.start_date)

        campaign = await self.campaign_repo.create(data)
        log.success(f"Campaign '{campaign.name}' created (ID: {campaign.id}, status: {campaign.status}).")

        if schedule.send_immediately:
            log.info(f"Scheduling immediate execution of campaign {campaign.id}.")
            self.executor.runner.schedule(
                self.executor.execute(campaign.id, actor), name=f"campaign-start:{campaign.id}"
            )
        return campaign

    async def list(
        self, actor: Actor, filters: CampaignFilters, skip: int = 0, limit: int = 20
    ) -> Tuple[int, List[CampaignInDB]]:
        query = {"is_active": True}
        if filters.status:
            query["status"] = filters.status
        if filters.type:
            query["type"] = filters.type
        query = scoped_query(
            actor,
            query,
            agency_id=self.campaign_repo.parse_id(filters.agency_id) if filters.agency_id else None,
        )
        total = await self.campaign_repo.count(query)
        items = await self.campaign_repo.list_by(query, skip=skip, limit=limit, sort=[("created_at", -1)])
        return total, items

    async def get(self, campaign_id: str | ObjectId, actor: Actor) -> CampaignInDB:
        campaign = await self._get_active(campaign_id)
        ensure_allowed(actor, Action.READ, campaign.resource_ref())
        return campaign

    async def update(self, campaign_id: str, payload: CampaignUpdateAPI, actor: Actor) -> CampaignInDB:
        campaign = await self._get_active(campaign_id)
        ensure_allowed(actor, Action.UPDATE, campaign.resource_ref())
        if campaign.status == "running":
            raise BadRequestError("A running campaign cannot be edited")

        data = payload.model_dump(exclude_unset=True, exclude={"version"})
        new_status = data.get("status")
        if new_status is not None and new_status != campaign.status:
            if new_status not in MANUAL_TRANSITIONS.get(campaign.status, frozenset()):
                raise BadRequestError(f"Invalid status transition: {campaign.status} -> {new_status}")

        expected = payload.version if payload.version is not None else campaign.version
        updated = await self.campaign_repo.update(campaign.id, data, expected_version=expected)
        if updated is None:
            raise NotFoundError("Campaign not found")
        return updated

    async def remove(self, campaign_id: str, actor: Actor) -> None:
        campaign = await self._get_active(campaign_id)
        ensure_allowed(actor, Action.DELETE, campaign.resource_ref())
        if campaign.status == "running":
            raise BadRequestError("A running campaign cannot be deleted")
        await self.campaign_repo.set_active_status(campaign.id, False, expected_version=campaign.version)
        logger.bind(service="CampaignService").info(f"Campaign {campaign.id} deactivated.")

    async def execute(self, campaign_id: str, actor: Actor) -> CampaignInDB:
        return await self.executor.execute(campaign_id, actor)


async def get_campaign_service(
    campaign_repo: CampaignRepository = Depends(get_campaign_repository),
    contact_repo: ContactRepository = Depends(get_contact_repository),
    agency_repo: AgencyRepository = Depends(get_agency_repository),
    channel_service: ChannelService = Depends(get_channel_service),
    executor: CampaignExecutor = Depends(get_campaign_executor),
) -> CampaignService:
    return CampaignService(campaign_repo, contact_repo, agency_repo, channel_service, executor)
