# tests/conftest.py
import os

# Settings são lidas na importação do pacote: o ambiente de teste vem antes
TEST_ENV = {
    "PROJECT_NAME": "SmartBroker Test",
    "API_V1_STR": "/api/v1",
    "LOG_LEVEL": "DEBUG",
    "MONGODB_URI": "mongodb://localhost:27017/smartbroker_test",
    "SECRET_KEY": "test-secret-key-0123456789abcdef",
    "ALGORITHM": "HS256",
    "BOOTSTRAP_ADMIN_EMAILS": '["root@example.com"]',
    "RATE_LIMIT_ENABLED": "false",
    "AI_PROVIDER": "openai",
    "OPENAI_API_KEY": "",
    "GEMINI_API_KEY": "",
    "EVOLUTION_API_URL": "http://evolution.test",
    "EVOLUTION_API_KEY": "evolution-test-key",
    "WHATSAPP_DEFAULT_INSTANCE": "default",
    "AGENT_MAX_TURNS": "3",
}
os.environ.update(TEST_ENV)

import itertools
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence, Union

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from smartbroker.core.authorization import Actor
from smartbroker.core.database import ensure_indexes, get_database
from smartbroker.core.exceptions import MessagingError, ProviderError
from smartbroker.core.security import actor_from_user, create_token_for_user, get_password_hash
from smartbroker.modules.agencies.models import AgencyInDB
from smartbroker.modules.agencies.repository import AgencyRepository
from smartbroker.modules.contacts.models import ContactInDB
from smartbroker.modules.contacts.repository import ContactRepository
from smartbroker.modules.people.models import UserInDB
from smartbroker.modules.people.repository import UserRepository
from smartbroker.modules.properties.models import PropertyInDB
from smartbroker.modules.properties.repository import PropertyRepository
from smartbroker.services.llm_client import BaseLLMClient, ProviderFactory, ProviderResponse
from smartbroker.services.whatsapp_service import BaseMessagingBridge, DeliveryAck, normalize_phone
from smartbroker.worker.runner import BackgroundRunner

TEST_PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(TEST_PASSWORD)
_seq = itertools.count(1)


# --- Fakes das capacidades externas ---
class FakeBridge(BaseMessagingBridge):
    provider_name = "Fake"

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.failing_numbers: set = set()
        self.error: Optional[Exception] = None

    async def _record(self, kind: str, channel_id: str, recipient: str, **data: Any) -> DeliveryAck:
        number = normalize_phone(recipient)
        if self.error is not None:
            raise self.error
        if number in self.failing_numbers:
            raise MessagingError(f"Gateway rejected {number}")
        self.sent.append({"kind": kind, "channel": channel_id, "number": number, **data})
        return DeliveryAck(message_id=f"MSG{len(self.sent)}")

    async def send_text(self, channel_id: str, recipient: str, text: str) -> DeliveryAck:
        return await self._record("text", channel_id, recipient, text=text)

    async def send_media(self, channel_id, recipient, media_type, media_ref, caption=None) -> DeliveryAck:
        return await self._record(
            "media", channel_id, recipient, media_type=media_type, media=media_ref, caption=caption
        )


class FakeProvider(BaseLLMClient):
    """Devolve respostas roteirizadas, na ordem; exceções no roteiro são levantadas."""

    provider_name = "FakeAI"

    def __init__(self, script: Sequence[Union[ProviderResponse, Exception]] = ()):
        super().__init__(api_key="fake-key", model="fake-model")
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system_prompt, transcript, tools=None) -> ProviderResponse:
        self.calls.append({"system_prompt": system_prompt, "transcript": list(transcript), "tools": tools})
        if not self.script:
            raise ProviderError("Script exhausted")
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


class FakeProviderFactory(ProviderFactory):
    def __init__(self, provider: Optional[BaseLLMClient] = None):
        super().__init__(max_size=4)
        self.provider = provider

    async def for_agency(self, agency):
        return self.provider


# --- Seed ---
class Seeder:
    def __init__(self, db):
        self.users = UserRepository(db)
        self.agencies = AgencyRepository(db)
        self.properties = PropertyRepository(db)
        self.contacts = ContactRepository(db)

    async def user(self, role: str = "viewer", agency_id=None, email: Optional[str] = None, **fields) -> UserInDB:
        n = next(_seq)
        return await self.users.create({
            "email": email or f"user{n}@example.com",
            "hashed_password": PASSWORD_HASH,
            "name": f"User {n}",
            "role": role,
            "agency_id": agency_id,
            "is_active": True,
            **fields,
        })

    async def agency(self, owner: Optional[UserInDB] = None, **fields) -> AgencyInDB:
        owner = owner or await self.user("manager")
        agency = await self.agencies.create({
            "name": fields.pop("name", "Imobiliária Teste"),
            "cnpj": fields.pop("cnpj", f"{next(_seq):014d}"),
            "owner_id": owner.id,
            "member_ids": [],
            "is_active": True,
            "max_instances": fields.pop("max_instances", 1),
            **fields,
        })
        await self.users.set_agency(owner.id, agency.id)
        return agency

    async def member(self, agency: AgencyInDB, role: str = "agent", **fields) -> UserInDB:
        user = await self.user(role, agency_id=agency.id, **fields)
        current = await self.agencies.get_by_id(agency.id)
        await self.agencies.add_member(agency.id, user.id, expected_version=current.version)
        return user

    async def property(self, agency: AgencyInDB, created_by: UserInDB, **fields) -> PropertyInDB:
        return await self.properties.create({
            "title": "Apartamento 2 quartos",
            "type": "apartment",
            "transaction_type": "sale",
            "price": 450000.0,
            "status": "available",
            "area": 70.0,
            "address": {"city": "São Paulo", "neighborhood": "Pinheiros", "state": "SP"},
            "features": {"bedrooms": 2},
            "agency_id": agency.id,
            "created_by": created_by.id,
            "is_active": True,
            "views": 0,
            **fields,
        })

    async def contact(self, agency: Optional[AgencyInDB], created_by: UserInDB, **fields) -> ContactInDB:
        return await self.contacts.create({
            "name": f"Lead {next(_seq)}",
            "phone": f"55119{next(_seq):08d}",
            "agency_id": agency.id if agency else None,
            "status": "new",
            "created_by": created_by.id,
            "is_active": True,
            "interactions": [],
            **fields,
        })

    async def refresh(self, user: UserInDB) -> UserInDB:
        return await self.users.get_by_id(user.id)

    async def actor(self, user: UserInDB) -> Actor:
        return actor_from_user(await self.refresh(user))

    @staticmethod
    def headers(user: UserInDB) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_token_for_user(user)}"}


# --- Fixtures ---
@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client[f"smartbroker_test_{next(_seq)}"]
    await ensure_indexes(database)
    yield database


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def runner() -> BackgroundRunner:
    return BackgroundRunner()


@pytest.fixture
def provider_factory() -> FakeProviderFactory:
    return FakeProviderFactory()


@pytest_asyncio.fixture
async def client(db, bridge, runner, provider_factory) -> AsyncGenerator[AsyncClient, None]:
    from smartbroker.main import app

    app.dependency_overrides[get_database] = lambda: db
    app.state.messaging_bridge = bridge
    app.state.runner = runner
    app.state.provider_factory = provider_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as test_client:
        yield test_client
    await runner.drain()
    app.dependency_overrides.clear()
