# smartbroker/modules/properties/repository.py
import re
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from smartbroker.core.database import get_database
from smartbroker.core.repository import BaseRepository
from .models import PropertyFilters, PropertyInDB


def _range(min_value: Optional[float], max_value: Optional[float]) -> Dict[str, float]:
    bounds: Dict[str, float] = {}
    if min_value is not None:
        bounds["$gte"] = min_value
    if max_value is not None:
        bounds["$lte"] = max_value
    return bounds


def _contains(value: str) -> Dict[str, str]:
    return {"$regex": re.escape(value.strip()), "$options": "i"}


class PropertyRepository(BaseRepository[PropertyInDB]):
    model = PropertyInDB
    collection_name = "properties"

    @staticmethod
    def build_filter_query(filters: PropertyFilters) -> Dict[str, Any]:
        query: Dict[str, Any] = {"is_active": True}
        for field in ("type", "transaction_type", "status"):
            value = getattr(filters, field)
            if value:
                query[field] = value

        price = _range(filters.min_price, filters.max_price)
        if price:
            query["price"] = price
        area = _range(filters.min_area, filters.max_area)
        if area:
            query["area"] = area

        if filters.city:
            query["address.city"] = _contains(filters.city)
        if filters.neighborhood:
            query["address.neighborhood"] = _contains(filters.neighborhood)
        if filters.state:
            query["address.state"] = filters.state.strip().upper()

        for field in ("bedrooms", "bathrooms", "parking_spaces"):
            value = getattr(filters, field)
            if value is not None:
                query[f"features.{field}"] = {"$gte": value}
        return query

    async def increment_views(self, property_id: ObjectId) -> None:
        # Contador informativo: não altera a versão do documento
        await self.collection.update_one({"_id": property_id}, {"$inc": {"views": 1}})


async def get_property_repository(db: AsyncIOMotorDatabase = Depends(get_database)) -> PropertyRepository:
    return PropertyRepository(db)
