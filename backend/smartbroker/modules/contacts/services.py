# smartbroker/modules/contacts/services.py
from typing import List, Optional, Tuple

from bson import ObjectId
from fastapi import Depends
from loguru import logger

from smartbroker.core.authorization import Action, Actor, ResourceRef, Role, ensure_allowed, scoped_query
from smartbroker.core.exceptions import BadRequestError, NotFoundError
from smartbroker.modules.agencies.repository import AgencyRepository, get_agency_repository
from smartbroker.modules.agencies.services import resolve_target_agency
from smartbroker.modules.channels.services import ChannelService, get_channel_service
from smartbroker.services.whatsapp_service import BaseMessagingBridge, DeliveryAck, get_messaging_bridge
from .models import (
    ContactCreateAPI,
    ContactFilters,
    ContactInDB,
    ContactUpdateAPI,
    Interaction,
    InteractionCreateAPI,
)
from .repository import ContactRepository, get_contact_repository


class ContactService:
    def __init__(
        self,
        contact_repo: ContactRepository,
        agency_repo: AgencyRepository,
        channel_service: ChannelService,
        bridge: BaseMessagingBridge,
    ):
        self.contact_repo = contact_repo
        self.agency_repo = agency_repo
        self.channel_service = channel_service
        self.bridge = bridge

    async def _get_active(self, contact_id: str | ObjectId) -> ContactInDB:
        contact = await self.contact_repo.get_by_id(self.contact_repo.parse_id(contact_id))
        if contact is None or not contact.is_active:
            raise NotFoundError("Contact not found")
        return contact

    async def create(self, payload: ContactCreateAPI, actor: Actor) -> ContactInDB:
        if actor.is_admin and payload.agency_id is None and actor.agency_id is None:
            # Contato de bootstrap, fora de qualquer agência
            agency_id = None
            ensure_allowed(actor, Action.CREATE, ResourceRef(agency_id=None))
        else:
            agency_id = await resolve_target_agency(self.agency_repo, actor, payload.agency_id)

        data = payload.model_dump()
        data.update(agency_id=agency_id, created_by=actor.user_id, is_active=True, interactions=[])
        if data.get("assigned_to") is None and actor.role is Role.AGENT:
            data["assigned_to"] = actor.user_id

        contact = await self.contact_repo.create(data)
        logger.bind(service="ContactService", agency_id=str(agency_id)).success(f"Contact created (ID: {contact.id}).")
        return contact

    async def list(
        self, actor: Actor, filters: ContactFilters, skip: int = 0, limit: int = 20
    ) -> Tuple[int, List[ContactInDB]]:
        query = scoped_query(
            actor,
            self.contact_repo.build_filter_query(filters),
            agency_id=self.contact_repo.parse_id(filters.agency_id) if filters.agency_id else None,
            assignee_field="assigned_to",
        )
        total = await self.contact_repo.count(query)
        items = await self.contact_repo.list_by(query, skip=skip, limit=limit, sort=[("created_at", -1)])
        return total, items

    async def get(self, contact_id: str | ObjectId, actor: Actor) -> ContactInDB:
        contact = await self._get_active(contact_id)
        ensure_allowed(actor, Action.READ, contact.resource_ref())
        return contact

    async def find_by_phone(self, phone: str, actor: Actor, agency_id: Optional[ObjectId] = None) -> ContactInDB:
        target = agency_id or actor.agency_id
        contact = await self.contact_repo.find_by_phone(phone, target)
        if contact is None:
            raise NotFoundError("Contact not found")
        ensure_allowed(actor, Action.READ, contact.resource_ref())
        return contact

    async def update(self, contact_id: str, payload: ContactUpdateAPI, actor: Actor) -> ContactInDB:
        contact = await self._get_active(contact_id)
        ensure_allowed(actor, Action.UPDATE, contact.resource_ref())
        data = payload.model_dump(exclude_unset=True, exclude={"version"})
        expected = payload.version if payload.version is not None else contact.version
        updated = await self.contact_repo.update(contact.id, data, expected_version=expected)
        if updated is None:
            raise NotFoundError("Contact not found")
        return updated

    async def add_interaction(
        self, contact_id: str | ObjectId, payload: InteractionCreateAPI, actor: Actor
    ) -> ContactInDB:
        contact = await self._get_active(contact_id)
        ensure_allowed(actor, Action.UPDATE, contact.resource_ref())
        interaction = Interaction(**payload.model_dump(), performed_by=actor.user_id)
        updated = await self.contact_repo.push_interaction(contact.id, interaction)
        logger.bind(service="ContactService", contact_id=str(contact.id)).info(
            f"Interaction '{interaction.type}' recorded."
        )
        return updated

    async def send_whatsapp(
        self, contact_id: str | ObjectId, message: str, actor: Actor, channel: Optional[str] = None
    ) -> Tuple[ContactInDB, DeliveryAck]:
        """Envia mensagem pelo gateway e registra a interação no histórico."""
        contact = await self._get_active(contact_id)
        ensure_allowed(actor, Action.UPDATE, contact.resource_ref())
        if not message or not message.strip():
            raise BadRequestError("Message must not be empty")

        instance = channel or await self.channel_service.resolve_for_agency(contact.agency_id)
        ack = await self.bridge.send_text(instance, contact.phone, message)

        interaction = Interaction(
            type="whatsapp",
            description=message,
            performed_by=actor.user_id,
            metadata={"channel": instance, "message_id": ack.message_id, "status": ack.status},
        )
        updated = await self.contact_repo.push_interaction(contact.id, interaction)
        return updated, ack

    async def remove(self, contact_id: str, actor: Actor) -> None:
        contact = await self._get_active(contact_id)
        ensure_allowed(actor, Action.DELETE, contact.resource_ref())
        await self.contact_repo.set_active_status(contact.id, False, expected_version=contact.version)
        logger.bind(service="ContactService").info(f"Contact {contact.id} deactivated.")


async def get_contact_service(
    contact_repo: ContactRepository = Depends(get_contact_repository),
    agency_repo: AgencyRepository = Depends(get_agency_repository),
    channel_service: ChannelService = Depends(get_channel_service),
    bridge: BaseMessagingBridge = Depends(get_messaging_bridge),
) -> ContactService:
    return ContactService(contact_repo, agency_repo, channel_service, bridge)
