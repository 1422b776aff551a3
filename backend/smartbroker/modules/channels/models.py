# smartbroker/modules/channels/models.py
from typing import Literal, Optional

from pydantic import Field

from smartbroker.core.authorization import ResourceRef
from smartbroker.models.api_common import DocumentModel, MongoModel, PyObjectId

CHANNEL_STATUSES = Literal["active", "inactive"]


class ChannelInDB(DocumentModel):
    """Instância do gateway WhatsApp vinculada a uma agência."""
    instance_name: str
    agency_id: PyObjectId
    created_by: PyObjectId
    phone_number: Optional[str] = None
    description: Optional[str] = None
    status: CHANNEL_STATUSES = "active"

    def resource_ref(self) -> ResourceRef:
        # Recurso da agência como um todo, sem responsável individual
        return ResourceRef(agency_id=self.agency_id)


class ChannelCreateAPI(MongoModel):
    instance_name: str = Field(..., min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_\-]+$")
    phone_number: Optional[str] = None
    description: Optional[str] = None
    agency_id: Optional[PyObjectId] = None
