# smartbroker/modules/properties/models.py
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from smartbroker.core.authorization import ResourceRef
from smartbroker.models.api_common import Address, DocumentModel, MongoModel, PyObjectId

PROPERTY_TYPES = Literal["house", "apartment", "commercial", "land", "farm", "penthouse", "studio"]
TRANSACTION_TYPES = Literal["sale", "rent", "both"]
PROPERTY_STATUSES = Literal["available", "sold", "rented", "reserved", "unavailable"]


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PropertyAddress(Address):
    coordinates: Optional[Coordinates] = None


class PropertyFeatures(BaseModel):
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    suites: int = Field(default=0, ge=0)
    parking_spaces: int = Field(default=0, ge=0)
    furnished: bool = False
    pet_friendly: bool = False
    pool: bool = False
    gym: bool = False
    elevator: bool = False
    security: bool = False


class PropertyInDB(DocumentModel):
    title: str
    description: Optional[str] = None
    type: PROPERTY_TYPES
    transaction_type: TRANSACTION_TYPES
    status: PROPERTY_STATUSES = "available"
    price: float = Field(..., ge=0)
    area: float = Field(..., ge=0, description="Area in square meters")
    address: PropertyAddress
    features: PropertyFeatures = Field(default_factory=PropertyFeatures)
    photos: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    agency_id: PyObjectId
    created_by: PyObjectId
    is_active: bool = True
    views: int = 0

    def resource_ref(self) -> ResourceRef:
        return ResourceRef(agency_id=self.agency_id, owner_id=self.created_by)


class PropertyCreateAPI(MongoModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = None
    type: PROPERTY_TYPES
    transaction_type: TRANSACTION_TYPES
    status: PROPERTY_STATUSES = "available"
    price: float = Field(..., ge=0)
    area: float = Field(..., ge=0)
    address: PropertyAddress
    features: PropertyFeatures = Field(default_factory=PropertyFeatures)
    photos: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    agency_id: Optional[PyObjectId] = Field(None, description="Defaults to the caller's agency. Admins may target any agency.")


class PropertyUpdateAPI(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = None
    type: Optional[PROPERTY_TYPES] = None
    transaction_type: Optional[TRANSACTION_TYPES] = None
    status: Optional[PROPERTY_STATUSES] = None
    price: Optional[float] = Field(None, ge=0)
    area: Optional[float] = Field(None, ge=0)
    address: Optional[PropertyAddress] = None
    features: Optional[PropertyFeatures] = None
    photos: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    version: Optional[int] = None


class PropertyFilters(BaseModel):
    type: Optional[PROPERTY_TYPES] = None
    transaction_type: Optional[TRANSACTION_TYPES] = None
    status: Optional[PROPERTY_STATUSES] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_area: Optional[float] = None
    max_area: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    neighborhood: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    parking_spaces: Optional[int] = None
    agency_id: Optional[str] = Field(None, description="Admin only: restrict to one agency")
