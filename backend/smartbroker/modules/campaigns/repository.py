# smartbroker/modules/campaigns/repository.py
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from smartbroker.core.database import get_database
from smartbroker.core.repository import BaseRepository
from .models import CampaignInDB, CampaignStatistics


class CampaignRepository(BaseRepository[CampaignInDB]):
    model = CampaignInDB
    collection_name = "campaigns"

    async def set_status(
        self,
        campaign_id: ObjectId,
        status: str,
        expected_version: Optional[int] = None,
        **fields: Any,
    ) -> Optional[CampaignInDB]:
        data: Dict[str, Any] = {"status": status, **fields}
        return await self.apply(campaign_id, {"$set": data}, expected_version=expected_version)

    async def save_statistics(
        self, campaign_id: ObjectId, statistics: CampaignStatistics, **fields: Any
    ) -> Optional[CampaignInDB]:
        data: Dict[str, Any] = {"statistics": statistics.model_dump(), **fields}
        return await self.apply(campaign_id, {"$set": data})


async def get_campaign_repository(db: AsyncIOMotorDatabase = Depends(get_database)) -> CampaignRepository:
    return CampaignRepository(db)
