# smartbroker/modules/agents/tools.py
"""Ferramentas que o agente pode chamar.

Cada ferramenta delega para os serviços existentes com o ``Actor`` de quem
iniciou a sessão, então as mesmas regras de acesso da API valem aqui.
O resultado é sempre uma string JSON ``{"success": ...}``; erros nunca sobem
para o loop do orquestrador.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from fastapi import HTTPException
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from smartbroker.core.authorization import Action, Actor, ResourceRef, ensure_allowed
from smartbroker.core.exceptions import MessagingError
from smartbroker.modules.channels.services import ChannelService
from smartbroker.modules.contacts.models import CONTACT_STATUSES, ContactFilters
from smartbroker.modules.contacts.services import ContactService
from smartbroker.modules.properties.models import PROPERTY_TYPES, TRANSACTION_TYPES, PropertyFilters
from smartbroker.modules.properties.services import PropertyService
from smartbroker.services.whatsapp_service import BaseMessagingBridge

SUMMARY_LIMIT = 5


# --- Parâmetros ---
class SearchPropertiesParams(BaseModel):
    type: Optional[PROPERTY_TYPES] = Field(None, description="Tipo do imóvel")
    transaction_type: Optional[TRANSACTION_TYPES] = Field(None, description="Venda, aluguel ou ambos")
    min_price: Optional[float] = Field(None, description="Preço mínimo")
    max_price: Optional[float] = Field(None, description="Preço máximo")
    bedrooms: Optional[int] = Field(None, description="Número mínimo de quartos")
    city: Optional[str] = Field(None, description="Cidade")
    neighborhood: Optional[str] = Field(None, description="Bairro")


class PropertyDetailsParams(BaseModel):
    property_id: str = Field(..., description="ID do imóvel")


class SearchContactsParams(BaseModel):
    status: Optional[CONTACT_STATUSES] = Field(None, description="Status do contato")
    name: Optional[str] = Field(None, description="Nome (ou parte do nome) do contato")
    phone: Optional[str] = Field(None, description="Telefone do contato")


class SendWhatsappParams(BaseModel):
    phone: str = Field(..., min_length=8, description="Número de telefone com código do país")
    message: str = Field(..., min_length=1, description="Mensagem a ser enviada")


# --- Schema ---
_DROPPED_KEYS = {"title", "default"}


def clean_schema(node: Any) -> Any:
    """Remove ``title``/``default`` e colapsa ``anyOf [X, null]`` em ``X``."""
    if isinstance(node, list):
        return [clean_schema(item) for item in node]
    if not isinstance(node, dict):
        return node

    variants = node.get("anyOf")
    if variants:
        non_null = [v for v in variants if v.get("type") != "null"]
        if len(non_null) == 1:
            merged = {k: v for k, v in node.items() if k != "anyOf"}
            merged.update(non_null[0])
            return clean_schema(merged)

    return {k: clean_schema(v) for k, v in node.items() if k not in _DROPPED_KEYS}


def parameters_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    schema = clean_schema(model.model_json_schema())
    parameters: Dict[str, Any] = {"type": "object", "properties": schema.get("properties", {})}
    if schema.get("required"):
        parameters["required"] = schema["required"]
    return parameters


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    params_model: Type[BaseModel]

    def schema(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": parameters_schema(self.params_model)}


TOOL_DEFINITIONS: Dict[str, ToolDefinition] = {
    tool.name: tool
    for tool in (
        ToolDefinition(
            "search_properties",
            "Busca imóveis da agência com filtros. Retorna o total e até 5 resumos.",
            SearchPropertiesParams,
        ),
        ToolDefinition("get_property_details", "Obtém os detalhes completos de um imóvel pelo ID.", PropertyDetailsParams),
        ToolDefinition(
            "search_contacts",
            "Busca contatos/leads no CRM com filtros. Retorna o total e até 5 resultados.",
            SearchContactsParams,
        ),
        ToolDefinition("send_whatsapp_message", "Envia uma mensagem de WhatsApp para um telefone.", SendWhatsappParams),
    )
}


def _result(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, default=str, ensure_ascii=False)


def failure(error: str) -> str:
    return _result({"success": False, "error": error})


class ToolRegistry:
    """Registro de ferramentas ligado a um ator."""

    def __init__(
        self,
        actor: Actor,
        property_service: PropertyService,
        contact_service: ContactService,
        channel_service: ChannelService,
        bridge: BaseMessagingBridge,
    ):
        self.actor = actor
        self.property_service = property_service
        self.contact_service = contact_service
        self.channel_service = channel_service
        self.bridge = bridge
        self._handlers: Dict[str, Callable[[Any], Awaitable[Dict[str, Any]]]] = {
            "search_properties": self._search_properties,
            "get_property_details": self._get_property_details,
            "search_contacts": self._search_contacts,
            "send_whatsapp_message": self._send_whatsapp_message,
        }

    @staticmethod
    def schemas() -> List[Dict[str, Any]]:
        return [tool.schema() for tool in TOOL_DEFINITIONS.values()]

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]]) -> str:
        log = logger.bind(service="ToolRegistry", tool=name, user_id=str(self.actor.user_id))
        definition = TOOL_DEFINITIONS.get(name)
        if definition is None:
            log.warning("Unknown tool requested by the model.")
            return failure(f"Unknown tool: {name}")

        try:
            params = definition.params_model.model_validate(arguments or {})
        except ValidationError as e:
            log.warning(f"Invalid tool arguments: {e.errors(include_url=False)}")
            return failure(f"Invalid arguments: {e.errors(include_url=False)}")

        log.info("Executing tool...")
        try:
            payload = await self._handlers[name](params)
        except HTTPException as e:
            log.warning(f"Tool denied/failed with HTTP {e.status_code}: {e.detail}")
            return failure(str(e.detail))
        except MessagingError as e:
            log.warning(f"Messaging failure: {e}")
            return failure(str(e))
        except Exception as e:
            log.exception("Unexpected error executing tool.")
            return failure(f"Unexpected error: {e}")
        return _result({"success": True, **payload})

    async def _search_properties(self, params: SearchPropertiesParams) -> Dict[str, Any]:
        filters = PropertyFilters(**params.model_dump(exclude_none=True))
        total, items = await self.property_service.list(self.actor, filters, skip=0, limit=SUMMARY_LIMIT)
        return {
            "count": total,
            "properties": [
                {
                    "id": str(p.id),
                    "title": p.title,
                    "type": p.type,
                    "price": p.price,
                    "bedrooms": p.features.bedrooms if p.features else None,
                    "city": p.address.city if p.address else None,
                }
                for p in items
            ],
        }

    async def _get_property_details(self, params: PropertyDetailsParams) -> Dict[str, Any]:
        prop = await self.property_service.get(params.property_id, self.actor, count_view=False)
        details = prop.model_dump(
            mode="json",
            include={"id", "title", "description", "type", "transaction_type", "status", "price", "area", "features", "address"},
        )
        return {"property": details}

    async def _search_contacts(self, params: SearchContactsParams) -> Dict[str, Any]:
        filters = ContactFilters(**params.model_dump(exclude_none=True))
        total, items = await self.contact_service.list(self.actor, filters, skip=0, limit=SUMMARY_LIMIT)
        return {
            "count": total,
            "contacts": [
                {"id": str(c.id), "name": c.name, "phone": c.phone, "status": c.status, "email": c.email}
                for c in items
            ],
        }

    async def _send_whatsapp_message(self, params: SendWhatsappParams) -> Dict[str, Any]:
        ensure_allowed(self.actor, Action.EXECUTE, ResourceRef(agency_id=self.actor.agency_id))
        channel = await self.channel_service.resolve_for_agency(self.actor.agency_id)
        ack = await self.bridge.send_text(channel, params.phone, params.message)
        return {"message": "Mensagem enviada com sucesso", "message_id": ack.message_id, "channel": channel}
