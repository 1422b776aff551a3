# smartbroker/modules/properties/services.py
from typing import List, Tuple

from bson import ObjectId
from fastapi import Depends
from loguru import logger

from smartbroker.core.authorization import Action, Actor, ensure_allowed, scoped_query
from smartbroker.core.exceptions import NotFoundError
from smartbroker.modules.agencies.repository import AgencyRepository, get_agency_repository
from smartbroker.modules.agencies.services import resolve_target_agency
from .models import PropertyCreateAPI, PropertyFilters, PropertyInDB, PropertyUpdateAPI
from .repository import PropertyRepository, get_property_repository


class PropertyService:
    def __init__(self, property_repo: PropertyRepository, agency_repo: AgencyRepository):
        self.property_repo = property_repo
        self.agency_repo = agency_repo

    async def _get_active(self, property_id: str | ObjectId) -> PropertyInDB:
        prop = await self.property_repo.get_by_id(self.property_repo.parse_id(property_id))
        if prop is None or not prop.is_active:
            raise NotFoundError("Property not found")
        return prop

    async def create(self, payload: PropertyCreateAPI, actor: Actor) -> PropertyInDB:
        agency_id = await resolve_target_agency(self.agency_repo, actor, payload.agency_id)
        data = payload.model_dump()
        data["address"]["state"] = (data["address"].get("state") or "").upper() or None
        data.update(agency_id=agency_id, created_by=actor.user_id, is_active=True, views=0)
        prop = await self.property_repo.create(data)
        logger.bind(service="PropertyService", agency_id=str(agency_id)).success(f"Property created (ID: {prop.id}).")
        return prop

    async def list(
        self, actor: Actor, filters: PropertyFilters, skip: int = 0, limit: int = 20
    ) -> Tuple[int, List[PropertyInDB]]:
        query = scoped_query(
            actor,
            self.property_repo.build_filter_query(filters),
            agency_id=self.property_repo.parse_id(filters.agency_id) if filters.agency_id else None,
        )
        total = await self.property_repo.count(query)
        items = await self.property_repo.list_by(query, skip=skip, limit=limit, sort=[("created_at", -1)])
        return total, items

    async def get(self, property_id: str | ObjectId, actor: Actor, count_view: bool = True) -> PropertyInDB:
        prop = await self._get_active(property_id)
        ensure_allowed(actor, Action.READ, prop.resource_ref())
        if count_view:
            await self.property_repo.increment_views(prop.id)
            prop.views += 1
        return prop

    async def update(self, property_id: str, payload: PropertyUpdateAPI, actor: Actor) -> PropertyInDB:
        prop = await self._get_active(property_id)
        ensure_allowed(actor, Action.UPDATE, prop.resource_ref())
        data = payload.model_dump(exclude_unset=True, exclude={"version"})
        if data.get("address") and data["address"].get("state"):
            data["address"]["state"] = data["address"]["state"].upper()
        expected = payload.version if payload.version is not None else prop.version
        updated = await self.property_repo.update(prop.id, data, expected_version=expected)
        if updated is None:
            raise NotFoundError("Property not found")
        return updated

    async def remove(self, property_id: str, actor: Actor) -> None:
        prop = await self._get_active(property_id)
        ensure_allowed(actor, Action.DELETE, prop.resource_ref())
        await self.property_repo.set_active_status(prop.id, False, expected_version=prop.version)
        logger.bind(service="PropertyService").info(f"Property {prop.id} deactivated.")


async def get_property_service(
    property_repo: PropertyRepository = Depends(get_property_repository),
    agency_repo: AgencyRepository = Depends(get_agency_repository),
) -> PropertyService:
    return PropertyService(property_repo, agency_repo)
