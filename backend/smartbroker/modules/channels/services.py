# smartbroker/modules/channels/services.py
from typing import List, Optional

from bson import ObjectId
from fastapi import Depends
from loguru import logger

from smartbroker.core.authorization import Action, Actor, Role, ensure_allowed, require_role, scoped_query
from smartbroker.core.config import settings
from smartbroker.core.exceptions import BadRequestError, ConflictError, NotFoundError
from smartbroker.modules.agencies.repository import AgencyRepository, get_agency_repository
from smartbroker.modules.agencies.services import resolve_target_agency
from .models import ChannelCreateAPI, ChannelInDB
from .repository import ChannelRepository, get_channel_repository


class ChannelService:
    def __init__(self, channel_repo: ChannelRepository, agency_repo: AgencyRepository):
        self.channel_repo = channel_repo
        self.agency_repo = agency_repo

    async def create(self, payload: ChannelCreateAPI, actor: Actor) -> ChannelInDB:
        require_role(actor, Role.MANAGER)
        agency_id = await resolve_target_agency(self.agency_repo, actor, payload.agency_id)
        agency = await self.agency_repo.get_by_id(agency_id)
        log = logger.bind(service="ChannelService", agency_id=str(agency_id), instance=payload.instance_name)

        active = await self.channel_repo.count_active(agency_id)
        if active >= agency.max_instances:
            log.warning(f"Channel quota reached ({active}/{agency.max_instances}).")
            raise BadRequestError(f"Channel quota reached for this agency ({agency.max_instances})")
        if await self.channel_repo.get_by_name(payload.instance_name):
            raise ConflictError("A channel with this instance name already exists")

        data = payload.model_dump()
        data.update(agency_id=agency_id, created_by=actor.user_id, status="active")
        channel = await self.channel_repo.create(data)
        log.success(f"Channel registered (ID: {channel.id}).")
        return channel

    async def list(self, actor: Actor, agency_id: Optional[ObjectId] = None) -> List[ChannelInDB]:
        query = scoped_query(actor, agency_id=agency_id, owner_scoped=False)
        return await self.channel_repo.list_by(query, limit=0, sort=[("created_at", 1)])

    async def deactivate(self, instance_name: str, actor: Actor) -> ChannelInDB:
        channel = await self.channel_repo.get_by_name(instance_name)
        if channel is None or channel.status != "active":
            raise NotFoundError("Channel not found")
        require_role(actor, Role.MANAGER)
        ensure_allowed(actor, Action.DELETE, channel.resource_ref())
        return await self.channel_repo.update(channel.id, {"status": "inactive"}, expected_version=channel.version)

    async def resolve_for_agency(self, agency_id: Optional[ObjectId]) -> str:
        """Instância usada para envios da agência (primeira ativa, senão a padrão)."""
        if agency_id is not None:
            channel = await self.channel_repo.first_active(agency_id)
            if channel:
                return channel.instance_name
        return settings.WHATSAPP_DEFAULT_INSTANCE


async def get_channel_service(
    channel_repo: ChannelRepository = Depends(get_channel_repository),
    agency_repo: AgencyRepository = Depends(get_agency_repository),
) -> ChannelService:
    return ChannelService(channel_repo, agency_repo)
