# smartbroker/services/llm_client.py

import hashlib
import json
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
import openai
from fastapi import Request
from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from smartbroker.core.config import settings
from smartbroker.core.exceptions import ProviderError
from smartbroker.modules.agencies.models import AgencyInDB

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"


class ToolCall(BaseModel):
    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ProviderResponse(BaseModel):
    """Resposta normalizada: texto final OU chamadas de ferramenta."""
    text: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


def _ensure_usable(response: ProviderResponse, provider: str) -> ProviderResponse:
    if not response.tool_calls and not (response.text and response.text.strip()):
        raise ProviderError(f"{provider} returned neither text nor tool calls")
    if response.tool_calls:
        # Chamadas de ferramenta têm precedência sobre texto parcial
        response.text = None
    return response


# --- Cliente Base ---
class BaseLLMClient(ABC):
    provider_name: str

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        transcript: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ProviderResponse:
        """``transcript`` é a lista de mensagens ``{role, content}`` da sessão."""

    async def close(self) -> None:
        return None


# --- Cliente OpenAI ---
class OpenAIClient(BaseLLMClient):
    provider_name = "OpenAI"

    def __init__(self, api_key: str, model: str = settings.OPENAI_MODEL, client: Optional[AsyncOpenAI] = None):
        super().__init__(api_key, model)
        self.aclient = client or AsyncOpenAI(api_key=api_key, timeout=settings.AI_REQUEST_TIMEOUT_SECONDS)
        logger.info(f"OpenAI client initialized for API Key: ...{api_key[-4:]} (model={model})")

    async def close(self) -> None:
        await self.aclient.close()

    async def complete(
        self,
        system_prompt: str,
        transcript: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ProviderResponse:
        log = logger.bind(service="LLMClient", provider=self.provider_name, model=self.model)
        messages = [{"role": "system", "content": system_prompt}]
        messages += [{"role": m["role"], "content": m["content"]} for m in transcript]
        kwargs: Dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            kwargs["tools"] = [{"type": "function", "function": tool} for tool in tools]
            kwargs["tool_choice"] = "auto"

        log.info(f"Sending chat completion request ({len(messages)} messages, {len(tools or [])} tools)...")
        try:
            completion = await self.aclient.chat.completions.create(**kwargs)
        except openai.APITimeoutError as e:
            log.error("Timeout calling OpenAI.")
            raise ProviderError("Request to OpenAI timed out") from e
        except openai.APIStatusError as e:
            log.error(f"HTTP Error {e.status_code} from OpenAI: {str(e)[:300]}")
            raise ProviderError(f"OpenAI returned HTTP {e.status_code}") from e
        except openai.APIError as e:
            log.error(f"OpenAI API error: {e}")
            raise ProviderError(f"OpenAI API error: {e}") from e

        if not completion.choices:
            raise ProviderError("OpenAI returned no choices")
        message = completion.choices[0].message

        calls: List[ToolCall] = []
        for call in message.tool_calls or []:
            if call.type != "function":
                continue
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as e:
                raise ProviderError(f"Invalid JSON arguments for tool '{call.function.name}'") from e
            calls.append(ToolCall(id=call.id, name=call.function.name, arguments=arguments or {}))

        log.info(f"OpenAI request successful. Finish Reason: {completion.choices[0].finish_reason}")
        return _ensure_usable(ProviderResponse(text=message.content, tool_calls=calls), self.provider_name)


# --- Cliente Gemini (REST via httpx) ---
class GeminiClient(BaseLLMClient):
    provider_name = "Gemini"

    def __init__(self, api_key: str, model: str = settings.GEMINI_MODEL, client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key, model)
        self.aclient = client or httpx.AsyncClient(
            base_url=GEMINI_API_URL,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
        )
        logger.info(f"Gemini client initialized for API Key: ...{api_key[-4:]} (model={model})")

    async def close(self) -> None:
        await self.aclient.aclose()

    @staticmethod
    def build_payload(
        system_prompt: str, transcript: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        contents = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [{"text": m["content"]}]}
            for m in transcript
            if m["role"] != "system"
        ]
        payload: Dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": contents,
        }
        if tools:
            payload["tools"] = [{"functionDeclarations": tools}]
        return payload

    @staticmethod
    def parse_response(data: Dict[str, Any]) -> ProviderResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise ProviderError(f"Gemini returned no candidates ({reason})")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        texts: List[str] = []
        calls: List[ToolCall] = []
        for part in parts:
            if "functionCall" in part:
                fc = part["functionCall"]
                calls.append(ToolCall(name=fc.get("name", ""), arguments=fc.get("args") or {}))
            elif part.get("text"):
                texts.append(part["text"])
        return ProviderResponse(text="".join(texts) or None, tool_calls=calls)

    async def complete(
        self,
        system_prompt: str,
        transcript: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ProviderResponse:
        log = logger.bind(service="LLMClient", provider=self.provider_name, model=self.model)
        payload = self.build_payload(system_prompt, transcript, tools)
        log.info(f"Sending generateContent request ({len(payload['contents'])} contents)...")
        try:
            response = await self.aclient.post(f"/models/{self.model}:generateContent", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(f"HTTP Error {e.response.status_code} from Gemini: {e.response.text[:300]}")
            raise ProviderError(f"Gemini returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            log.error("Timeout calling Gemini.")
            raise ProviderError("Request to Gemini timed out") from e
        except httpx.RequestError as e:
            log.error(f"Network/Request error calling Gemini: {e}")
            raise ProviderError(f"Network error calling Gemini: {e}") from e

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise ProviderError("Gemini returned a non-JSON body") from e
        return _ensure_usable(self.parse_response(data), self.provider_name)


# --- Configuração por agência ---
@dataclass(frozen=True)
class AIConfig:
    provider: str
    api_key: Optional[str]
    model: str

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def fingerprint(self) -> str:
        raw = f"{self.provider}|{self.model}|{self.api_key or ''}"
        return hashlib.sha256(raw.encode()).hexdigest()[:16]


def resolve_ai_config(agency: Optional[AgencyInDB]) -> AIConfig:
    """Configuração da agência (``settings.ai``) sobrepõe a global, campo a campo."""
    override = agency.settings.ai if agency is not None else None
    provider = (override.provider if override and override.provider else None) or settings.AI_PROVIDER
    if provider == "google":
        default_key, default_model = settings.GEMINI_API_KEY, settings.GEMINI_MODEL
    else:
        default_key, default_model = settings.OPENAI_API_KEY, settings.OPENAI_MODEL
    api_key = (override.api_key if override and override.api_key else None) or default_key
    model = (override.model if override and override.model else None) or default_model
    return AIConfig(provider=provider, api_key=api_key, model=model)


class ProviderFactory:
    """Cria e reutiliza clientes por agência (LRU limitado).

    Uma entrada é recriada quando a configuração da agência muda.
    Sem chave configurada, devolve None (modo demonstração).
    """

    def __init__(self, max_size: int = settings.AGENT_PROVIDER_CACHE_SIZE):
        self.max_size = max_size
        self._cache: "OrderedDict[str, Tuple[str, BaseLLMClient]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._cache)

    def build(self, config: AIConfig) -> BaseLLMClient:
        if config.provider == "google":
            return GeminiClient(config.api_key, model=config.model)
        if config.provider == "openai":
            return OpenAIClient(config.api_key, model=config.model)
        raise ValueError(f"Unsupported AI provider: {config.provider}")

    async def get(self, agency_id: Any, config: AIConfig) -> Optional[BaseLLMClient]:
        if not config.enabled:
            return None
        key = str(agency_id)
        cached = self._cache.get(key)
        if cached is not None:
            fingerprint, client = cached
            if fingerprint == config.fingerprint:
                self._cache.move_to_end(key)
                return client
            logger.info(f"AI config changed for agency {key}; rebuilding {config.provider} client.")
            del self._cache[key]
            await client.close()

        client = self.build(config)
        self._cache[key] = (config.fingerprint, client)
        while len(self._cache) > self.max_size:
            evicted_key, (_, evicted) = self._cache.popitem(last=False)
            logger.debug(f"Evicting AI client for agency {evicted_key}.")
            await evicted.close()
        return client

    async def for_agency(self, agency: Optional[AgencyInDB]) -> Optional[BaseLLMClient]:
        return await self.get(agency.id if agency else None, resolve_ai_config(agency))

    async def close(self) -> None:
        while self._cache:
            _, (_, client) = self._cache.popitem()
            await client.close()


def get_provider_factory(request: Request) -> ProviderFactory:
    return request.app.state.provider_factory
