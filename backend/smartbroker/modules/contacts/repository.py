# smartbroker/modules/contacts/repository.py
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from smartbroker.core.database import get_database
from smartbroker.core.repository import BaseRepository
from .models import ContactFilters, ContactInDB, Interaction


class ContactRepository(BaseRepository[ContactInDB]):
    model = ContactInDB
    collection_name = "contacts"

    @staticmethod
    def build_filter_query(filters: ContactFilters) -> Dict[str, Any]:
        query: Dict[str, Any] = {"is_active": True}
        for field in ("status", "origin", "urgency"):
            value = getattr(filters, field)
            if value:
                query[field] = value
        if filters.assigned_to:
            query["assigned_to"] = BaseRepository.parse_id(filters.assigned_to)
        if filters.tags:
            tags = [t.strip() for t in filters.tags.split(",") if t.strip()]
            if tags:
                query["tags"] = {"$in": tags}
        if filters.name:
            query["name"] = {"$regex": re.escape(filters.name.strip()), "$options": "i"}
        if filters.phone:
            query["phone"] = {"$regex": re.escape(filters.phone.strip())}
        return query

    async def find_by_phone(self, phone: str, agency_id: Optional[ObjectId]) -> Optional[ContactInDB]:
        return await self.get_by({"phone": phone, "agency_id": agency_id, "is_active": True})

    async def push_interaction(
        self, contact_id: ObjectId, interaction: Interaction, expected_version: Optional[int] = None
    ) -> Optional[ContactInDB]:
        return await self.apply(
            contact_id,
            {
                "$push": {"interactions": interaction.model_dump()},
                "$set": {"last_contact_date": interaction.date},
            },
            expected_version=expected_version,
        )

    async def list_audience(
        self,
        agency_id: Optional[ObjectId],
        contact_ids: Optional[List[ObjectId]] = None,
        statuses: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
    ) -> List[ContactInDB]:
        """Contatos ativos de uma agência por lista explícita ou filtro de status/tags."""
        return await self.list_by(self.audience_query(agency_id, contact_ids, statuses, tags), limit=0)

    @staticmethod
    def audience_query(
        agency_id: Optional[ObjectId],
        contact_ids: Optional[List[ObjectId]] = None,
        statuses: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"agency_id": agency_id, "is_active": True}
        if contact_ids:
            query["_id"] = {"$in": list(contact_ids)}
            return query
        if statuses:
            query["status"] = {"$in": list(statuses)}
        if tags:
            query["tags"] = {"$in": list(tags)}
        return query


async def get_contact_repository(db: AsyncIOMotorDatabase = Depends(get_database)) -> ContactRepository:
    return ContactRepository(db)
