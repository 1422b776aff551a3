# tests/services/test_llm_client.py
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from bson import ObjectId

from conftest import FakeProvider
from smartbroker.core.config import settings
from smartbroker.core.exceptions import ProviderError
from smartbroker.modules.agencies.models import AgencyAIConfig, AgencyInDB, AgencySettings
from smartbroker.services.llm_client import (
    GEMINI_API_URL,
    AIConfig,
    GeminiClient,
    OpenAIClient,
    ProviderFactory,
    resolve_ai_config,
)

TOOLS = [{"name": "search_properties", "description": "Busca imóveis", "parameters": {"type": "object", "properties": {}}}]


def make_agency(ai: AgencyAIConfig = None) -> AgencyInDB:
    return AgencyInDB(
        name="Imobiliária Teste", cnpj="00000000000100", owner_id=ObjectId(), settings=AgencySettings(ai=ai)
    )


class ClosingProvider(FakeProvider):
    def __init__(self, config: AIConfig):
        super().__init__()
        self.config = config
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class RecordingFactory(ProviderFactory):
    def build(self, config: AIConfig):
        return ClosingProvider(config)


# --- Configuração ---
def test_global_config_without_key_is_disabled():
    config = resolve_ai_config(None)
    assert config.provider == settings.AI_PROVIDER
    assert config.model == settings.OPENAI_MODEL
    assert not config.enabled


def test_agency_override_wins_field_by_field():
    agency = make_agency(AgencyAIConfig(provider="google", api_key="agency-gemini-key"))
    config = resolve_ai_config(agency)
    assert config == AIConfig(provider="google", api_key="agency-gemini-key", model=settings.GEMINI_MODEL)
    assert config.enabled


def test_fingerprint_changes_with_config():
    first = AIConfig(provider="openai", api_key="k1", model="gpt-4o-mini")
    assert first.fingerprint == AIConfig(provider="openai", api_key="k1", model="gpt-4o-mini").fingerprint
    assert first.fingerprint != AIConfig(provider="openai", api_key="k2", model="gpt-4o-mini").fingerprint
    assert "k1" not in first.fingerprint


# --- Factory ---
@pytest.mark.asyncio
class TestProviderFactory:
    async def test_disabled_config_returns_none(self):
        factory = RecordingFactory()
        assert await factory.get("agency", AIConfig(provider="openai", api_key=None, model="m")) is None
        assert len(factory) == 0

    async def test_clients_are_reused_until_config_changes(self):
        factory = RecordingFactory()
        config = AIConfig(provider="openai", api_key="k1", model="m")

        first = await factory.get("agency", config)
        assert await factory.get("agency", config) is first

        rebuilt = await factory.get("agency", AIConfig(provider="openai", api_key="k2", model="m"))
        assert rebuilt is not first
        assert first.closed
        assert len(factory) == 1

    async def test_least_recently_used_is_evicted(self):
        factory = RecordingFactory(max_size=2)
        config = AIConfig(provider="openai", api_key="k", model="m")
        a = await factory.get("a", config)
        b = await factory.get("b", config)
        await factory.get("a", config)
        c = await factory.get("c", config)

        assert len(factory) == 2
        assert b.closed
        assert not a.closed and not c.closed

        await factory.close()
        assert a.closed and c.closed
        assert len(factory) == 0

    async def test_for_agency_uses_agency_override(self):
        factory = RecordingFactory()
        agency = make_agency(AgencyAIConfig(provider="openai", api_key="agency-key", model="gpt-4o"))
        client = await factory.for_agency(agency)
        assert client.config.api_key == "agency-key"
        assert client.config.model == "gpt-4o"

    async def test_build_real_clients(self):
        factory = ProviderFactory()
        openai_client = factory.build(AIConfig(provider="openai", api_key="sk-test-1234", model="gpt-4o-mini"))
        gemini_client = factory.build(AIConfig(provider="google", api_key="gm-test-5678", model="gemini-test"))
        assert isinstance(openai_client, OpenAIClient)
        assert isinstance(gemini_client, GeminiClient)
        with pytest.raises(ValueError):
            factory.build(AIConfig(provider="other", api_key="x", model="y"))
        await openai_client.close()
        await gemini_client.close()


# --- Gemini ---
def test_gemini_payload_maps_roles_and_tools():
    payload = GeminiClient.build_payload(
        "Você é um assistente",
        [{"role": "user", "content": "Oi"}, {"role": "assistant", "content": "Olá!"}],
        TOOLS,
    )
    assert payload["systemInstruction"] == {"parts": [{"text": "Você é um assistente"}]}
    assert [c["role"] for c in payload["contents"]] == ["user", "model"]
    assert payload["tools"] == [{"functionDeclarations": TOOLS}]


def test_gemini_parse_function_calls_and_text():
    response = GeminiClient.parse_response({"candidates": [{"content": {"parts": [
        {"functionCall": {"name": "search_properties", "args": {"city": "Santos"}}},
        {"text": "Vou buscar."},
    ]}}]})
    assert response.has_tool_calls
    assert response.tool_calls[0].name == "search_properties"
    assert response.tool_calls[0].arguments == {"city": "Santos"}
    assert response.tool_calls[0].id

    with pytest.raises(ProviderError):
        GeminiClient.parse_response({"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}})


@pytest.mark.asyncio
async def test_gemini_complete_over_http():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Tudo certo."}]}}]})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=GEMINI_API_URL)
    client = GeminiClient("gm-test-5678", model="gemini-test", client=http_client)

    response = await client.complete("sys", [{"role": "user", "content": "Oi"}], TOOLS)

    assert response.text == "Tudo certo."
    assert not response.has_tool_calls
    assert seen["path"].endswith("/models/gemini-test:generateContent")
    assert seen["body"]["tools"] == [{"functionDeclarations": TOOLS}]
    await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code, body", [
    (500, {"error": "internal"}),
    (200, {"candidates": [{"content": {"parts": []}}]}),
])
async def test_gemini_failures_become_provider_errors(status_code, body):
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, json=body))
    client = GeminiClient("gm-test-5678", model="gemini-test", client=httpx.AsyncClient(transport=transport, base_url=GEMINI_API_URL))
    with pytest.raises(ProviderError):
        await client.complete("sys", [{"role": "user", "content": "Oi"}])
    await client.close()


# --- OpenAI ---
def fake_openai(message) -> SimpleNamespace:
    completion = SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])
    return SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(return_value=completion))),
        close=AsyncMock(),
    )


def openai_tool_call(arguments: str) -> SimpleNamespace:
    return SimpleNamespace(
        id="call_1", type="function", function=SimpleNamespace(name="search_properties", arguments=arguments)
    )


@pytest.mark.asyncio
async def test_openai_tool_calls_take_precedence_over_text():
    aclient = fake_openai(SimpleNamespace(content="parcial", tool_calls=[openai_tool_call('{"city": "Santos"}')]))
    client = OpenAIClient("sk-test-1234", model="gpt-4o-mini", client=aclient)

    response = await client.complete("sys", [{"role": "user", "content": "Oi"}], TOOLS)

    assert response.text is None
    assert response.tool_calls[0].id == "call_1"
    assert response.tool_calls[0].arguments == {"city": "Santos"}
    kwargs = aclient.chat.completions.create.await_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
    assert kwargs["tools"] == [{"type": "function", "function": TOOLS[0]}]


@pytest.mark.asyncio
async def test_openai_invalid_arguments_and_empty_answers():
    bad_json = OpenAIClient("sk-test-1234", client=fake_openai(
        SimpleNamespace(content=None, tool_calls=[openai_tool_call("{not json")])
    ))
    with pytest.raises(ProviderError):
        await bad_json.complete("sys", [{"role": "user", "content": "Oi"}])

    empty = OpenAIClient("sk-test-1234", client=fake_openai(SimpleNamespace(content="   ", tool_calls=None)))
    with pytest.raises(ProviderError):
        await empty.complete("sys", [{"role": "user", "content": "Oi"}])
