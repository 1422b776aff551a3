# smartbroker/modules/agencies/repository.py
from typing import List, Optional

from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from smartbroker.core.database import get_database
from smartbroker.core.repository import BaseRepository
from .models import AgencyInDB


class AgencyRepository(BaseRepository[AgencyInDB]):
    model = AgencyInDB
    collection_name = "agencies"

    async def get_by_cnpj(self, cnpj: str) -> Optional[AgencyInDB]:
        return await self.get_by({"cnpj": cnpj})

    async def list_for_user(self, user_id: ObjectId) -> List[AgencyInDB]:
        return await self.list_by(
            {"is_active": True, "$or": [{"owner_id": user_id}, {"member_ids": user_id}]},
            limit=0,
            sort=[("created_at", -1)],
        )

    async def add_member(self, agency_id: ObjectId, user_id: ObjectId, expected_version: int) -> Optional[AgencyInDB]:
        return await self.apply(agency_id, {"$push": {"member_ids": user_id}}, expected_version=expected_version)

    async def remove_member(self, agency_id: ObjectId, user_id: ObjectId, expected_version: int) -> Optional[AgencyInDB]:
        return await self.apply(agency_id, {"$pull": {"member_ids": user_id}}, expected_version=expected_version)


async def get_agency_repository(db: AsyncIOMotorDatabase = Depends(get_database)) -> AgencyRepository:
    return AgencyRepository(db)
