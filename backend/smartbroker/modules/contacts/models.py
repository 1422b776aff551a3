# smartbroker/modules/contacts/models.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from smartbroker.core.authorization import ResourceRef
from smartbroker.models.api_common import DocumentModel, MongoModel, PyObjectId, utcnow
from smartbroker.services.whatsapp_service import DeliveryAck

CONTACT_ORIGINS = Literal[
    "whatsapp", "website", "phone", "email", "referral", "social_media", "walk_in", "ai_assistant", "other"
]
CONTACT_STATUSES = Literal["new", "contacted", "qualified", "negotiating", "converted", "not_interested", "lost"]
INTERACTION_TYPES = Literal["call", "email", "whatsapp", "visit", "meeting", "note", "ai_interaction"]
URGENCY_LEVELS = Literal["low", "medium", "high"]


class Interaction(MongoModel):
    """Entrada imutável do histórico do contato."""
    type: INTERACTION_TYPES
    description: str
    performed_by: Optional[PyObjectId] = None
    date: datetime = Field(default_factory=utcnow)
    property_id: Optional[PyObjectId] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContactPreferences(BaseModel):
    property_types: List[str] = Field(default_factory=list)
    transaction_type: Optional[Literal["sale", "rent", "both"]] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_bedrooms: Optional[int] = None
    cities: List[str] = Field(default_factory=list)
    neighborhoods: List[str] = Field(default_factory=list)


class ContactInDB(DocumentModel):
    name: str
    phone: str
    email: Optional[EmailStr] = None
    cpf: Optional[str] = None
    origin: CONTACT_ORIGINS = "other"
    status: CONTACT_STATUSES = "new"
    urgency: URGENCY_LEVELS = "medium"
    interested_property_ids: List[PyObjectId] = Field(default_factory=list)
    agency_id: Optional[PyObjectId] = None
    assigned_to: Optional[PyObjectId] = None
    created_by: Optional[PyObjectId] = None
    interactions: List[Interaction] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    preferences: Optional[ContactPreferences] = None
    last_contact_date: Optional[datetime] = None
    is_active: bool = True

    def resource_ref(self) -> ResourceRef:
        return ResourceRef(agency_id=self.agency_id, owner_id=self.assigned_to or self.created_by)


class ContactCreateAPI(MongoModel):
    name: str = Field(..., min_length=1, max_length=160)
    phone: str = Field(..., min_length=8, max_length=32)
    email: Optional[EmailStr] = None
    cpf: Optional[str] = None
    origin: CONTACT_ORIGINS = "other"
    status: CONTACT_STATUSES = "new"
    urgency: URGENCY_LEVELS = "medium"
    interested_property_ids: List[PyObjectId] = Field(default_factory=list)
    agency_id: Optional[PyObjectId] = None
    assigned_to: Optional[PyObjectId] = None
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    preferences: Optional[ContactPreferences] = None


class ContactUpdateAPI(MongoModel):
    name: Optional[str] = Field(None, min_length=1, max_length=160)
    phone: Optional[str] = Field(None, min_length=8, max_length=32)
    email: Optional[EmailStr] = None
    cpf: Optional[str] = None
    origin: Optional[CONTACT_ORIGINS] = None
    status: Optional[CONTACT_STATUSES] = None
    urgency: Optional[URGENCY_LEVELS] = None
    interested_property_ids: Optional[List[PyObjectId]] = None
    assigned_to: Optional[PyObjectId] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None
    preferences: Optional[ContactPreferences] = None
    version: Optional[int] = None


class ContactFilters(BaseModel):
    status: Optional[CONTACT_STATUSES] = None
    origin: Optional[CONTACT_ORIGINS] = None
    urgency: Optional[URGENCY_LEVELS] = None
    assigned_to: Optional[str] = None
    tags: Optional[str] = Field(None, description="Comma separated; matches any")
    name: Optional[str] = None
    phone: Optional[str] = None
    agency_id: Optional[str] = None


class InteractionCreateAPI(MongoModel):
    type: INTERACTION_TYPES
    description: str = Field(..., min_length=1)
    property_id: Optional[PyObjectId] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WhatsappMessageAPI(BaseModel):
    message: str = Field(..., min_length=1, max_length=4096)
    channel: Optional[str] = Field(None, description="WhatsApp instance; defaults to the agency's active channel")


class WhatsappSendResponse(BaseModel):
    contact: ContactInDB
    delivery: DeliveryAck
