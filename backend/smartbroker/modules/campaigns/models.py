# smartbroker/modules/campaigns/models.py
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from smartbroker.core.authorization import ResourceRef
from smartbroker.models.api_common import DocumentModel, MongoModel, PyObjectId
from smartbroker.services.whatsapp_service import MEDIA_TYPES

CAMPAIGN_TYPES = Literal["broadcast", "drip", "targeted"]
CAMPAIGN_STATUSES = Literal["draft", "scheduled", "running", "paused", "completed", "cancelled"]
SCHEDULE_FREQUENCIES = Literal["once", "daily", "weekly", "monthly"]

# Transições permitidas via update; running/completed só pelo executor
MANUAL_TRANSITIONS: Dict[str, frozenset] = {
    "draft": frozenset({"scheduled"}),
    "scheduled": frozenset({"draft", "paused", "cancelled"}),
    "paused": frozenset({"scheduled", "cancelled"}),
}


class CampaignAudience(MongoModel):
    target_status: List[str] = Field(default_factory=list)
    target_tags: List[str] = Field(default_factory=list)
    specific_contact_ids: List[PyObjectId] = Field(default_factory=list)


class CampaignMessage(BaseModel):
    template: str = Field(..., min_length=1, max_length=4096)
    variables: Dict[str, str] = Field(default_factory=dict)
    media_url: Optional[str] = None
    media_type: Optional[MEDIA_TYPES] = None


class CampaignSchedule(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    frequency: SCHEDULE_FREQUENCIES = "once"
    send_immediately: bool = False


class CampaignStatistics(BaseModel):
    total_contacts: int = 0
    sent: int = 0
    delivered: int = 0
    read: int = 0
    replied: int = 0
    failed: int = 0


class CampaignInDB(DocumentModel):
    name: str
    description: Optional[str] = None
    type: CAMPAIGN_TYPES = "broadcast"
    status: CAMPAIGN_STATUSES = "draft"
    audience: CampaignAudience = Field(default_factory=CampaignAudience)
    message: CampaignMessage
    schedule: CampaignSchedule = Field(default_factory=CampaignSchedule)
    channel: str
    statistics: CampaignStatistics = Field(default_factory=CampaignStatistics)
    agency_id: PyObjectId
    created_by: PyObjectId
    is_active: bool = True
    rate_limit_ms: int = Field(default=1000, ge=0)
    last_execution_date: Optional[datetime] = None
    next_execution_date: Optional[datetime] = None
    last_error: Optional[str] = None

    def resource_ref(self) -> ResourceRef:
        return ResourceRef(agency_id=self.agency_id, owner_id=self.created_by)


class CampaignCreateAPI(MongoModel):
    name: str = Field(..., min_length=3, max_length=160)
    description: Optional[str] = None
    type: CAMPAIGN_TYPES = "broadcast"
    audience: CampaignAudience = Field(default_factory=CampaignAudience)
    message: CampaignMessage
    schedule: CampaignSchedule = Field(default_factory=CampaignSchedule)
    channel: Optional[str] = Field(None, description="WhatsApp instance; defaults to the agency's active channel")
    rate_limit_ms: Optional[int] = Field(None, ge=0)
    agency_id: Optional[PyObjectId] = None


class CampaignUpdateAPI(MongoModel):
    name: Optional[str] = Field(None, min_length=3, max_length=160)
    description: Optional[str] = None
    type: Optional[CAMPAIGN_TYPES] = None
    status: Optional[CAMPAIGN_STATUSES] = None
    audience: Optional[CampaignAudience] = None
    message: Optional[CampaignMessage] = None
    schedule: Optional[CampaignSchedule] = None
    channel: Optional[str] = None
    rate_limit_ms: Optional[int] = Field(None, ge=0)
    version: Optional[int] = None


class CampaignFilters(BaseModel):
    status: Optional[CAMPAIGN_STATUSES] = None
    type: Optional[CAMPAIGN_TYPES] = None
    agency_id: Optional[str] = None
