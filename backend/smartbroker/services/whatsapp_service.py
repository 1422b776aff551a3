# smartbroker/services/whatsapp_service.py

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Literal, Optional

import httpx
from fastapi import Request
from loguru import logger
from pydantic import BaseModel, Field

from smartbroker.core.config import settings
from smartbroker.core.exceptions import MessagingError
from smartbroker.core.logging_config import trace_id_var

MEDIA_TYPES = Literal["image", "video", "document", "audio"]


class DeliveryAck(BaseModel):
    """Confirmação de aceite da mensagem pelo gateway (não de entrega ao aparelho)."""
    message_id: Optional[str] = None
    status: str = "accepted"
    raw: Dict[str, Any] = Field(default_factory=dict)


def normalize_phone(phone: str) -> str:
    """Mantém apenas dígitos (formato aceito pelo gateway)."""
    return re.sub(r"\D", "", phone or "")


class BaseMessagingBridge(ABC):
    provider_name: str

    @abstractmethod
    async def send_text(self, channel_id: str, recipient: str, text: str) -> DeliveryAck:
        ...

    @abstractmethod
    async def send_media(
        self,
        channel_id: str,
        recipient: str,
        media_type: MEDIA_TYPES,
        media_ref: str,
        caption: Optional[str] = None,
    ) -> DeliveryAck:
        ...

    async def close(self) -> None:
        return None


class EvolutionBridge(BaseMessagingBridge):
    """Envio de mensagens via Evolution API (gateway WhatsApp)."""

    provider_name = "Evolution"

    def __init__(
        self,
        base_url: str = settings.EVOLUTION_API_URL,
        api_key: Optional[str] = settings.EVOLUTION_API_KEY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        self.http_client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=25.0,
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
        )
        logger.info(f"EvolutionBridge initialized for {base_url}")

    async def close(self) -> None:
        await self.http_client.aclose()
        logger.info("EvolutionBridge HTTP client closed.")

    async def _post(self, path: str, payload: Dict[str, Any], log) -> DeliveryAck:
        try:
            response = await self.http_client.post(path, json=payload)
        except httpx.TimeoutException as e:
            log.error("Timeout sending WhatsApp message through Evolution API.")
            raise MessagingError("Timeout contacting WhatsApp gateway") from e
        except httpx.RequestError as e:
            log.error(f"HTTP request error sending WhatsApp message: {e}")
            raise MessagingError(f"Could not reach WhatsApp gateway: {e}") from e

        try:
            response_data: Dict[str, Any] = response.json()
        except json.JSONDecodeError:
            response_data = {"text": response.text[:500]}

        if not response.is_success:
            log.error(f"Evolution API rejected message. Status={response.status_code} Body={str(response_data)[:300]}")
            raise MessagingError(f"WhatsApp gateway returned HTTP {response.status_code}")

        message_id = (response_data.get("key") or {}).get("id")
        log.success(f"WhatsApp message accepted by gateway. ID: {message_id}")
        return DeliveryAck(message_id=message_id, status=str(response_data.get("status", "accepted")), raw=response_data)

    async def send_text(self, channel_id: str, recipient: str, text: str) -> DeliveryAck:
        number = normalize_phone(recipient)
        log = logger.bind(trace_id=trace_id_var.get(), service="WhatsAppBridge", channel=channel_id, recipient=number)
        if not number or not text:
            raise MessagingError("Recipient and text are required")
        log.info("Sending WhatsApp text message...")
        return await self._post(f"/message/sendText/{channel_id}", {"number": number, "text": text}, log)

    async def send_media(
        self,
        channel_id: str,
        recipient: str,
        media_type: MEDIA_TYPES,
        media_ref: str,
        caption: Optional[str] = None,
    ) -> DeliveryAck:
        number = normalize_phone(recipient)
        log = logger.bind(trace_id=trace_id_var.get(), service="WhatsAppBridge", channel=channel_id, recipient=number)
        if not number or not media_ref:
            raise MessagingError("Recipient and media are required")
        log.info(f"Sending WhatsApp {media_type} message...")
        payload = {"number": number, "mediatype": media_type, "media": media_ref, "caption": caption or ""}
        return await self._post(f"/message/sendMedia/{channel_id}", payload, log)


def get_messaging_bridge(request: Request) -> BaseMessagingBridge:
    """Dependência FastAPI: bridge compartilhado criado na inicialização da app."""
    return request.app.state.messaging_bridge
