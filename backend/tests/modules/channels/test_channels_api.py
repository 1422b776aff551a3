# tests/modules/channels/test_channels_api.py
import pytest
from httpx import AsyncClient

from smartbroker.modules.agencies.repository import AgencyRepository
from smartbroker.modules.channels.repository import ChannelRepository
from smartbroker.modules.channels.services import ChannelService

pytestmark = pytest.mark.asyncio

API = "/api/v1"


async def test_channel_quota_follows_max_instances(client: AsyncClient, seed):
    agency = await seed.agency(max_instances=1)
    manager = await seed.member(agency, "manager")
    headers = seed.headers(manager)

    first = await client.post(f"{API}/channels", json={"instance_name": "central-sp"}, headers=headers)
    assert first.status_code == 201, first.text
    assert first.json()["status"] == "active"
    assert first.json()["agency_id"] == str(agency.id)

    second = await client.post(f"{API}/channels", json={"instance_name": "filial-rj"}, headers=headers)
    assert second.status_code == 400

    # Desativar libera a cota
    removed = await client.delete(f"{API}/channels/central-sp", headers=headers)
    assert removed.status_code == 200
    assert removed.json()["status"] == "inactive"
    again = await client.post(f"{API}/channels", json={"instance_name": "filial-rj"}, headers=headers)
    assert again.status_code == 201


async def test_instance_names_are_unique(client: AsyncClient, seed):
    first_agency = await seed.agency()
    second_agency = await seed.agency()
    first = await seed.member(first_agency, "manager")
    second = await seed.member(second_agency, "manager")

    assert (await client.post(f"{API}/channels", json={"instance_name": "vendas"}, headers=seed.headers(first))).status_code == 201
    response = await client.post(f"{API}/channels", json={"instance_name": "vendas"}, headers=seed.headers(second))
    assert response.status_code == 409


async def test_agents_cannot_register_channels_but_can_list(client: AsyncClient, seed):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    agent = await seed.member(agency, "agent")

    denied = await client.post(f"{API}/channels", json={"instance_name": "agente-1"}, headers=seed.headers(agent))
    assert denied.status_code == 403

    await client.post(f"{API}/channels", json={"instance_name": "central"}, headers=seed.headers(manager))
    listed = await client.get(f"{API}/channels", headers=seed.headers(agent))
    assert listed.status_code == 200
    assert [c["instance_name"] for c in listed.json()] == ["central"]


async def test_resolve_for_agency_falls_back_to_default(seed, db):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    service = ChannelService(ChannelRepository(db), AgencyRepository(db))

    assert await service.resolve_for_agency(agency.id) == "default"
    assert await service.resolve_for_agency(None) == "default"

    await ChannelRepository(db).create({
        "instance_name": "central-sp", "agency_id": agency.id, "created_by": manager.id, "status": "active",
    })
    assert await service.resolve_for_agency(agency.id) == "central-sp"
