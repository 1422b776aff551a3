# tests/modules/campaigns/test_campaign_executor.py
import pytest
from unittest.mock import AsyncMock

from smartbroker.core.exceptions import BadRequestError, ForbiddenError
from smartbroker.modules.campaigns.executor import CampaignExecutor
from smartbroker.modules.campaigns.repository import CampaignRepository
from smartbroker.modules.contacts.repository import ContactRepository

pytestmark = pytest.mark.asyncio


@pytest.fixture
def campaigns(db) -> CampaignRepository:
    return CampaignRepository(db)


@pytest.fixture
def executor(db, bridge, runner) -> CampaignExecutor:
    return CampaignExecutor(CampaignRepository(db), ContactRepository(db), bridge, runner)


async def make_campaign(campaigns: CampaignRepository, agency, creator, **fields):
    return await campaigns.create({
        "name": "Lançamento Aurora",
        "status": "draft",
        "message": {"template": "Olá {{contact.name}}, conheça o {{empreendimento}}!", "variables": {"empreendimento": "Aurora"}},
        "audience": {"target_status": ["new"]},
        "channel": "central-sp",
        "agency_id": agency.id,
        "created_by": creator.id,
        "rate_limit_ms": 0,
        "is_active": True,
        **fields,
    })


async def test_failed_recipient_does_not_stop_the_batch(seed, campaigns, executor, bridge, runner):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    await seed.contact(agency, manager, name="Ana", phone="5511900000001")
    await seed.contact(agency, manager, name="Bia", phone="5511900000002")
    await seed.contact(agency, manager, name="Caio", phone="5511900000003")
    bridge.failing_numbers.add("5511900000002")
    campaign = await make_campaign(campaigns, agency, manager)

    running = await executor.execute(campaign.id, await seed.actor(manager))
    assert running.status == "running"
    assert running.statistics.total_contacts == 3
    assert running.last_execution_date is not None

    await runner.drain()
    done = await campaigns.get_by_id(campaign.id)
    assert done.status == "completed"
    assert done.statistics.total_contacts == 3
    assert done.statistics.sent == 2
    assert done.statistics.failed == 1
    assert sorted(m["text"] for m in bridge.sent) == ["Olá Ana, conheça o Aurora!", "Olá Caio, conheça o Aurora!"]
    assert {m["channel"] for m in bridge.sent} == {"central-sp"}


async def test_audience_is_limited_to_campaign_agency(seed, campaigns, executor, bridge, runner):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    other = await seed.agency()
    await seed.contact(agency, manager, tags=["vip"])
    await seed.contact(agency, manager, tags=["frio"])
    await seed.contact(other, manager, tags=["vip"])
    campaign = await make_campaign(campaigns, agency, manager, audience={"target_tags": ["vip"]})

    await executor.execute(campaign.id, await seed.actor(manager))
    await runner.drain()
    assert len(bridge.sent) == 1


async def test_specific_contacts_take_precedence(seed, campaigns, executor, bridge, runner):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    chosen = await seed.contact(agency, manager, status="lost")
    await seed.contact(agency, manager, status="new")
    campaign = await make_campaign(
        campaigns, agency, manager, audience={"target_status": ["new"], "specific_contact_ids": [chosen.id]}
    )

    await executor.execute(campaign.id, await seed.actor(manager))
    await runner.drain()
    assert [m["number"] for m in bridge.sent] == [chosen.phone]


async def test_empty_audience_completes_and_rejects(seed, campaigns, executor, bridge):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    campaign = await make_campaign(campaigns, agency, manager)

    with pytest.raises(BadRequestError) as exc_info:
        await executor.execute(campaign.id, await seed.actor(manager))
    assert exc_info.value.detail == "Campaign audience is empty"

    stored = await campaigns.get_by_id(campaign.id)
    assert stored.status == "completed"
    assert stored.statistics.total_contacts == 0
    assert stored.last_execution_date is not None
    assert bridge.sent == []


@pytest.mark.parametrize("status", ["running", "completed", "cancelled"])
async def test_non_executable_statuses(seed, campaigns, executor, status):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    await seed.contact(agency, manager)
    campaign = await make_campaign(campaigns, agency, manager, status=status)

    with pytest.raises(BadRequestError):
        await executor.execute(campaign.id, await seed.actor(manager))


async def test_viewer_cannot_execute(seed, campaigns, executor):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    viewer = await seed.member(agency, "viewer")
    await seed.contact(agency, manager)
    campaign = await make_campaign(campaigns, agency, manager)

    with pytest.raises(ForbiddenError):
        await executor.execute(campaign.id, await seed.actor(viewer))


async def test_rate_limit_sleeps_between_sends(seed, campaigns, executor, bridge, monkeypatch):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    contacts = [await seed.contact(agency, manager) for _ in range(3)]
    campaign = await make_campaign(campaigns, agency, manager, rate_limit_ms=250)
    sleep = AsyncMock()
    monkeypatch.setattr("smartbroker.modules.campaigns.executor.asyncio.sleep", sleep)

    done = await executor.deliver(campaign, contacts)

    assert done.status == "completed"
    assert len(bridge.sent) == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.25)


async def test_loop_failure_pauses_campaign(seed, campaigns, executor, bridge, monkeypatch):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    contacts = [await seed.contact(agency, manager) for _ in range(2)]
    campaign = await make_campaign(campaigns, agency, manager, rate_limit_ms=100)
    monkeypatch.setattr(
        "smartbroker.modules.campaigns.executor.asyncio.sleep", AsyncMock(side_effect=RuntimeError("loop interrupted"))
    )

    paused = await executor.deliver(campaign, contacts)

    assert paused.status == "paused"
    assert paused.last_error == "loop interrupted"
    assert paused.statistics.sent == 1
    assert len(bridge.sent) == 1


async def test_media_campaign_uses_caption(seed, campaigns, executor, bridge):
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    contact = await seed.contact(agency, manager, name="Duda")
    campaign = await make_campaign(
        campaigns,
        agency,
        manager,
        message={"template": "Fotos para {{contact.name}}", "media_url": "https://example.com/aurora.jpg"},
    )

    await executor.deliver(campaign, [contact])

    assert bridge.sent == [{
        "kind": "media",
        "channel": "central-sp",
        "number": contact.phone,
        "media_type": "image",
        "media": "https://example.com/aurora.jpg",
        "caption": "Fotos para Duda",
    }]
