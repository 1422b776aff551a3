# smartbroker/models/api_common.py

from datetime import datetime, timezone
from typing import Annotated, Any, Generic, List, Optional, TypeVar

from bson import ObjectId
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    WithJsonSchema,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError("Invalid ObjectId")


# ObjectId aceito como string na entrada e serializado como string no JSON
PyObjectId = Annotated[
    ObjectId,
    BeforeValidator(_coerce_object_id),
    PlainSerializer(str, return_type=str, when_used="json"),
    WithJsonSchema({"type": "string", "examples": ["66f1d7f3e9b1e8a3b2c4d5e6"]}),
]


class MongoModel(BaseModel):
    """Base para modelos que carregam ObjectId."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_default=True,
    )


class DocumentModel(MongoModel):
    """Campos comuns a todo documento persistido."""

    id: PyObjectId = Field(default_factory=ObjectId, validation_alias=AliasChoices("_id", "id"))
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Address(BaseModel):
    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(None, max_length=2, description="UF, e.g. SP")
    zip_code: Optional[str] = None
    country: str = "Brasil"


class StatusResponse(BaseModel):
    """Resposta genérica indicando o status de uma operação."""
    status: str = Field(..., description="Status geral (ex: 'ok', 'error', 'accepted')")
    message: Optional[str] = Field(None, description="Mensagem descritiva opcional.")


class DetailResponse(BaseModel):
    """Resposta genérica para erros."""
    detail: str = Field(..., description="Mensagem detalhada do erro.")


ItemType = TypeVar("ItemType")


class PaginatedResponse(BaseModel, Generic[ItemType]):
    """Wrapper genérico para respostas paginadas."""
    total_items: int = Field(..., description="Número total de itens disponíveis.")
    items: List[ItemType]
    limit: int = Field(..., description="Número máximo de itens por página.")
    skip: int = Field(..., description="Número de itens pulados (offset).")
