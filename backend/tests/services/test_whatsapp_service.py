# tests/services/test_whatsapp_service.py
import json

import httpx
import pytest

from smartbroker.core.exceptions import MessagingError
from smartbroker.services.whatsapp_service import EvolutionBridge, normalize_phone

BASE_URL = "http://evolution.local"


def make_bridge(handler) -> EvolutionBridge:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return EvolutionBridge(base_url=BASE_URL, api_key="evo-key", client=client)


@pytest.mark.parametrize("raw, expected", [
    ("+55 (11) 99999-0000", "5511999990000"),
    ("5511999990000", "5511999990000"),
    ("", ""),
    (None, ""),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.asyncio
async def test_send_text_posts_to_instance_path():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"key": {"id": "3EB0ABC"}, "status": "PENDING"})

    bridge = make_bridge(handler)
    ack = await bridge.send_text("central-sp", "+55 11 99999-0000", "Olá!")

    assert ack.message_id == "3EB0ABC"
    assert ack.status == "PENDING"
    assert requests[0].url.path == "/message/sendText/central-sp"
    assert json.loads(requests[0].content) == {"number": "5511999990000", "text": "Olá!"}
    await bridge.close()


@pytest.mark.asyncio
async def test_default_client_carries_api_key_header():
    bridge = EvolutionBridge(base_url=f"{BASE_URL}/", api_key="evo-key")
    assert bridge.http_client.headers["apikey"] == "evo-key"
    assert str(bridge.http_client.base_url).rstrip("/") == BASE_URL
    await bridge.close()


@pytest.mark.asyncio
async def test_send_media_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"key": {"id": "MEDIA1"}})

    bridge = make_bridge(handler)
    ack = await bridge.send_media("central-sp", "5511999990000", "image", "https://cdn.example.com/foto.jpg")

    assert ack.message_id == "MEDIA1"
    assert seen["path"] == "/message/sendMedia/central-sp"
    assert seen["body"] == {
        "number": "5511999990000", "mediatype": "image", "media": "https://cdn.example.com/foto.jpg", "caption": "",
    }
    await bridge.close()


@pytest.mark.asyncio
async def test_gateway_rejection_raises_messaging_error():
    bridge = make_bridge(lambda request: httpx.Response(401, json={"error": "Unauthorized"}))
    with pytest.raises(MessagingError, match="HTTP 401"):
        await bridge.send_text("central-sp", "5511999990000", "Olá!")
    await bridge.close()


@pytest.mark.asyncio
async def test_network_failures_raise_messaging_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    bridge = make_bridge(handler)
    with pytest.raises(MessagingError, match="Could not reach"):
        await bridge.send_text("central-sp", "5511999990000", "Olá!")
    await bridge.close()


@pytest.mark.asyncio
async def test_missing_recipient_is_rejected_before_sending():
    calls = []
    bridge = make_bridge(lambda request: calls.append(request) or httpx.Response(200, json={}))
    with pytest.raises(MessagingError):
        await bridge.send_text("central-sp", "sem número", "Olá!")
    assert calls == []
    await bridge.close()
