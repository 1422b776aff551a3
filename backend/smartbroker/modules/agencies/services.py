# smartbroker/modules/agencies/services.py
from typing import List, Optional, Tuple

from bson import ObjectId
from fastapi import Depends
from loguru import logger

from smartbroker.core.authorization import Action, Actor, ResourceRef, Role, ensure_allowed
from smartbroker.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from smartbroker.modules.campaigns.repository import CampaignRepository, get_campaign_repository
from smartbroker.modules.contacts.repository import ContactRepository, get_contact_repository
from smartbroker.modules.people.models import UserInDB
from smartbroker.modules.people.repository import UserRepository, get_user_repository
from smartbroker.modules.properties.repository import PropertyRepository, get_property_repository
from .models import AgencyCreateAPI, AgencyInDB, AgencySettings, AgencyStats, AgencyUpdateAPI
from .repository import AgencyRepository, get_agency_repository


async def resolve_target_agency(
    agency_repo: AgencyRepository, actor: Actor, requested: Optional[ObjectId]
) -> ObjectId:
    """Agência onde um novo recurso será criado (a do ator, ou a informada por um admin)."""
    agency_id = requested or actor.agency_id
    ensure_allowed(actor, Action.CREATE, ResourceRef(agency_id=agency_id))
    if agency_id is None:
        raise BadRequestError("agency_id is required")
    agency = await agency_repo.get_by_id(agency_id)
    if agency is None or not agency.is_active:
        raise NotFoundError("Agency not found")
    return agency_id


def tenant_ref(agency: AgencyInDB) -> ResourceRef:
    return ResourceRef(agency_id=agency.id, tenant_owner_id=agency.owner_id)


def _merge_settings(current: AgencySettings, incoming: AgencySettings) -> dict:
    """Chaves mascaradas ("****1234") reenviadas pelo cliente mantêm a chave atual."""
    merged = incoming.model_dump()
    incoming_ai = merged.get("ai") or {}
    key = incoming_ai.get("api_key")
    if key and key.startswith("****") and current.ai is not None:
        incoming_ai["api_key"] = current.ai.api_key
    return merged


# Papéis abaixo de manager são promovidos ao assumir a posse de uma agência
ROLES_BELOW_OWNER = frozenset({Role.AGENT, Role.VIEWER})


def owner_role_for(role: Role) -> Optional[Role]:
    return Role.MANAGER if Role(role) in ROLES_BELOW_OWNER else None


class AgencyService:
    def __init__(
        self,
        agency_repo: AgencyRepository,
        user_repo: UserRepository,
        property_repo: PropertyRepository,
        contact_repo: ContactRepository,
        campaign_repo: CampaignRepository,
    ):
        self.agency_repo = agency_repo
        self.user_repo = user_repo
        self.property_repo = property_repo
        self.contact_repo = contact_repo
        self.campaign_repo = campaign_repo

    async def _get_active(self, agency_id: str | ObjectId) -> AgencyInDB:
        agency = await self.agency_repo.get_by_id(self.agency_repo.parse_id(agency_id))
        if agency is None or not agency.is_active:
            raise NotFoundError("Agency not found")
        return agency

    async def _get_user(self, user_id: ObjectId) -> UserInDB:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def create(self, payload: AgencyCreateAPI, actor: Actor) -> AgencyInDB:
        cnpj = payload.cnpj.strip()
        log = logger.bind(service="AgencyService", cnpj=cnpj, owner=str(actor.user_id))
        if await self.agency_repo.get_by_cnpj(cnpj):
            log.warning("Agency creation rejected: CNPJ already registered.")
            raise ConflictError("An agency with this CNPJ already exists")

        data = payload.model_dump(exclude_none=True)
        data.update(
            cnpj=cnpj,
            owner_id=actor.user_id,
            member_ids=[],
            is_active=True,
            max_instances=1,
            settings=(payload.settings or AgencySettings()).model_dump(),
        )
        agency = await self.agency_repo.create(data)

        if actor.agency_id is not None and actor.agency_id != agency.id:
            # Um usuário pertence a uma agência por vez: o vínculo anterior é substituído
            log.warning(f"User was bound to agency {actor.agency_id}; rebinding to new agency {agency.id}.")
        promoted = owner_role_for(actor.role)
        if promoted is not None:
            log.info(f"Creator promoted from {actor.role.value} to {promoted.value} as agency owner.")
        await self.user_repo.set_agency(actor.user_id, agency.id, role=promoted)
        log.success(f"Agency created (ID: {agency.id}).")
        return agency

    async def list_all(self, actor: Actor, skip: int = 0, limit: int = 50) -> Tuple[int, List[AgencyInDB]]:
        ensure_allowed(actor, Action.ADMINISTER, ResourceRef(agency_id=None))
        query = {"is_active": True}
        total = await self.agency_repo.count(query)
        items = await self.agency_repo.list_by(query, skip=skip, limit=limit, sort=[("created_at", -1)])
        return total, items

    async def list_mine(self, actor: Actor) -> List[AgencyInDB]:
        return await self.agency_repo.list_for_user(actor.user_id)

    async def get(self, agency_id: str, actor: Actor) -> AgencyInDB:
        agency = await self._get_active(agency_id)
        if agency.owner_id != actor.user_id:
            ensure_allowed(actor, Action.READ, ResourceRef(agency_id=agency.id))
        return agency

    async def update(self, agency_id: str, payload: AgencyUpdateAPI, actor: Actor) -> AgencyInDB:
        agency = await self._get_active(agency_id)
        ensure_allowed(actor, Action.MANAGE_TENANT, tenant_ref(agency))

        data = payload.model_dump(exclude_unset=True, exclude={"version", "settings"})
        if "max_instances" in data and not actor.is_admin:
            raise ForbiddenError("Only administrators can change the instance quota")
        if payload.cnpj is not None:
            cnpj = payload.cnpj.strip()
            if cnpj != agency.cnpj and await self.agency_repo.get_by_cnpj(cnpj):
                raise ConflictError("An agency with this CNPJ already exists")
            data["cnpj"] = cnpj
        if payload.settings is not None:
            data["settings"] = _merge_settings(agency.settings, payload.settings)

        expected = payload.version if payload.version is not None else agency.version
        updated = await self.agency_repo.update(agency.id, data, expected_version=expected)
        logger.bind(service="AgencyService", agency_id=str(agency.id)).info(f"Agency updated: {sorted(data)}")
        return updated

    async def add_member(self, agency_id: str, user_id: ObjectId, actor: Actor) -> AgencyInDB:
        agency = await self._get_active(agency_id)
        ensure_allowed(actor, Action.MANAGE_TENANT, tenant_ref(agency))
        user = await self._get_user(user_id)
        log = logger.bind(service="AgencyService", agency_id=str(agency.id), member=str(user.id))

        if user.id == agency.owner_id or user.id in agency.member_ids:
            raise ConflictError("User is already a member of this agency")

        updated = await self.agency_repo.add_member(agency.id, user.id, expected_version=agency.version)
        if user.agency_id is not None and user.agency_id != agency.id:
            log.warning(f"User was bound to agency {user.agency_id}; rebinding.")
        await self.user_repo.set_agency(user.id, agency.id)
        log.success("Member added.")
        return updated

    async def remove_member(self, agency_id: str, user_id: ObjectId, actor: Actor) -> AgencyInDB:
        agency = await self._get_active(agency_id)
        # Vale para qualquer papel, inclusive admin
        if user_id == agency.owner_id:
            raise BadRequestError("The agency owner cannot be removed from the agency")
        ensure_allowed(actor, Action.MANAGE_TENANT, tenant_ref(agency))
        if user_id not in agency.member_ids:
            raise NotFoundError("User is not a member of this agency")

        updated = await self.agency_repo.remove_member(agency.id, user_id, expected_version=agency.version)
        user = await self.user_repo.get_by_id(user_id)
        if user is not None and user.agency_id == agency.id:
            await self.user_repo.set_agency(user.id, None)
        logger.bind(service="AgencyService", agency_id=str(agency.id), member=str(user_id)).success("Member removed.")
        return updated

    async def transfer_ownership(self, agency_id: str, new_owner_id: ObjectId, actor: Actor) -> AgencyInDB:
        agency = await self._get_active(agency_id)
        ensure_allowed(actor, Action.TRANSFER_OWNERSHIP, tenant_ref(agency))
        new_owner = await self._get_user(new_owner_id)
        if new_owner.id == agency.owner_id:
            raise BadRequestError("User already owns this agency")

        members = [m for m in agency.member_ids if m != new_owner.id]
        if agency.owner_id not in members:
            members.append(agency.owner_id)
        updated = await self.agency_repo.update(
            agency.id,
            {"owner_id": new_owner.id, "member_ids": members},
            expected_version=agency.version,
        )
        await self.user_repo.set_agency(new_owner.id, agency.id, role=owner_role_for(new_owner.role))
        logger.bind(service="AgencyService", agency_id=str(agency.id)).success(
            f"Ownership transferred from {agency.owner_id} to {new_owner.id}."
        )
        return updated

    async def remove(self, agency_id: str, actor: Actor) -> None:
        agency = await self._get_active(agency_id)
        ensure_allowed(actor, Action.DELETE_TENANT, tenant_ref(agency))
        await self.agency_repo.set_active_status(agency.id, False, expected_version=agency.version)
        await self.user_repo.clear_agency_for_all(agency.id)
        logger.bind(service="AgencyService", agency_id=str(agency.id)).success("Agency deactivated.")

    async def stats(self, agency_id: str, actor: Actor) -> AgencyStats:
        agency = await self.get(agency_id, actor)
        scope = {"agency_id": agency.id, "is_active": True}
        return AgencyStats(
            properties=await self.property_repo.count(scope),
            contacts=await self.contact_repo.count(scope),
            campaigns=await self.campaign_repo.count(scope),
            members=await self.user_repo.count(scope),
            max_instances=agency.max_instances,
        )


async def get_agency_service(
    agency_repo: AgencyRepository = Depends(get_agency_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    property_repo: PropertyRepository = Depends(get_property_repository),
    contact_repo: ContactRepository = Depends(get_contact_repository),
    campaign_repo: CampaignRepository = Depends(get_campaign_repository),
) -> AgencyService:
    return AgencyService(agency_repo, user_repo, property_repo, contact_repo, campaign_repo)
