# smartbroker/modules/channels/repository.py
from typing import Optional

from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from smartbroker.core.database import get_database
from smartbroker.core.repository import BaseRepository
from .models import ChannelInDB


class ChannelRepository(BaseRepository[ChannelInDB]):
    model = ChannelInDB
    collection_name = "channels"

    async def get_by_name(self, instance_name: str) -> Optional[ChannelInDB]:
        return await self.get_by({"instance_name": instance_name})

    async def count_active(self, agency_id: ObjectId) -> int:
        return await self.count({"agency_id": agency_id, "status": "active"})

    async def first_active(self, agency_id: ObjectId) -> Optional[ChannelInDB]:
        channels = await self.list_by({"agency_id": agency_id, "status": "active"}, limit=1, sort=[("created_at", 1)])
        return channels[0] if channels else None


async def get_channel_repository(db: AsyncIOMotorDatabase = Depends(get_database)) -> ChannelRepository:
    return ChannelRepository(db)
