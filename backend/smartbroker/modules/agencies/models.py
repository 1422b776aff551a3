# smartbroker/modules/agencies/models.py
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, FieldSerializationInfo, field_serializer

from smartbroker.models.api_common import Address, DocumentModel, MongoModel, PyObjectId

AI_PROVIDERS = Literal["openai", "google"]


class AgencyAIConfig(BaseModel):
    """Override per agency of the global AI provider settings."""
    provider: Optional[AI_PROVIDERS] = None
    api_key: Optional[str] = None
    model: Optional[str] = None

    @field_serializer("api_key")
    def mask_api_key(self, value: Optional[str], info: FieldSerializationInfo) -> Optional[str]:
        # Só o JSON da API é mascarado; o documento no banco guarda a chave
        if value and info.mode == "json":
            return f"****{value[-4:]}"
        return value


class AgencySettings(BaseModel):
    timezone: str = "America/Sao_Paulo"
    language: str = "pt-BR"
    ai: Optional[AgencyAIConfig] = None


class AgencyInDB(DocumentModel):
    name: str
    cnpj: str
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[Address] = None
    logo: Optional[str] = None
    owner_id: PyObjectId
    member_ids: List[PyObjectId] = Field(default_factory=list)
    is_active: bool = True
    max_instances: int = 1
    settings: AgencySettings = Field(default_factory=AgencySettings)


class AgencyCreateAPI(BaseModel):
    name: str = Field(..., min_length=2, max_length=160)
    cnpj: str = Field(..., min_length=1, max_length=32, description="Business registration number (unique)")
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[Address] = None
    logo: Optional[str] = None
    settings: Optional[AgencySettings] = None


class AgencyUpdateAPI(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=160)
    cnpj: Optional[str] = Field(None, min_length=1, max_length=32)
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[Address] = None
    logo: Optional[str] = None
    settings: Optional[AgencySettings] = None
    max_instances: Optional[int] = Field(None, ge=0, description="Admin only")
    version: Optional[int] = Field(None, description="Version read by the client, for optimistic concurrency")


class AddMemberAPI(MongoModel):
    user_id: PyObjectId


class TransferOwnershipAPI(MongoModel):
    new_owner_id: PyObjectId


class AgencyStats(BaseModel):
    properties: int
    contacts: int
    campaigns: int
    members: int
    max_instances: int
