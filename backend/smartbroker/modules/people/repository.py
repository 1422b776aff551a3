# smartbroker/modules/people/repository.py
from typing import Optional

from bson import ObjectId
from fastapi import Depends
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.results import UpdateResult

from smartbroker.core.authorization import Role
from smartbroker.core.database import get_database
from smartbroker.core.repository import BaseRepository
from smartbroker.models.api_common import utcnow
from .models import UserInDB


class UserRepository(BaseRepository[UserInDB]):
    model = UserInDB
    collection_name = "users"

    async def get_by_email(self, email: str) -> Optional[UserInDB]:
        return await self.get_by({"email": email.lower()})

    async def touch_last_login(self, user_id: ObjectId) -> None:
        await self.collection.update_one(
            {"_id": user_id},
            {"$set": {"last_login": utcnow()}},
        )

    async def set_agency(
        self, user_id: ObjectId, agency_id: Optional[ObjectId], role: Optional[Role] = None
    ) -> Optional[UserInDB]:
        """Vincula (ou desvincula, com None) o usuário a uma agência, ajustando o papel se informado."""
        fields = {"agency_id": agency_id}
        if role is not None:
            fields["role"] = role.value
        return await self.apply(user_id, {"$set": fields})

    async def clear_agency_for_all(self, agency_id: ObjectId) -> int:
        """Remove o vínculo de todos os usuários de uma agência. Retorna quantos foram alterados."""
        result: UpdateResult = await self.collection.update_many(
            {"agency_id": agency_id},
            {"$set": {"agency_id": None, "updated_at": utcnow()}, "$inc": {"version": 1}},
        )
        logger.bind(agency_id=str(agency_id)).info(f"Cleared agency binding for {result.modified_count} user(s).")
        return result.modified_count


# Factory to get repository instance
async def get_user_repository(db: AsyncIOMotorDatabase = Depends(get_database)) -> UserRepository:
    return UserRepository(db)
