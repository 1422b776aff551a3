# tests/core/test_repository.py
import pytest
from bson import ObjectId

from smartbroker.core.exceptions import BadRequestError, ConflictError
from smartbroker.modules.contacts.repository import ContactRepository

pytestmark = pytest.mark.asyncio


@pytest.fixture
def contacts(db) -> ContactRepository:
    return ContactRepository(db)


async def test_create_starts_at_version_one(contacts):
    contact = await contacts.create({"name": "Maria", "phone": "11999990000", "agency_id": ObjectId()})
    assert contact.version == 1
    assert contact.created_at is not None
    assert contact.status == "new"


async def test_update_increments_version(contacts):
    contact = await contacts.create({"name": "Maria", "phone": "11999990000"})
    updated = await contacts.update(contact.id, {"status": "contacted"}, expected_version=1)
    assert updated.version == 2
    assert updated.status == "contacted"

    # Sem expected_version a escrita não é condicionada
    again = await contacts.update(contact.id, {"notes": "ligar amanhã"})
    assert again.version == 3


async def test_stale_version_raises_conflict(contacts):
    contact = await contacts.create({"name": "Maria", "phone": "11999990000"})
    await contacts.update(contact.id, {"status": "contacted"}, expected_version=contact.version)

    with pytest.raises(ConflictError) as exc_info:
        await contacts.update(contact.id, {"status": "lost"}, expected_version=contact.version)
    assert exc_info.value.status_code == 409

    current = await contacts.get_by_id(contact.id)
    assert current.status == "contacted"
    assert current.version == 2


async def test_immutable_fields_are_ignored(contacts):
    contact = await contacts.create({"name": "Maria", "phone": "11999990000"})
    updated = await contacts.update(contact.id, {"version": 99, "created_at": None, "name": "Maria Silva"})
    assert updated.version == 2
    assert updated.created_at is not None
    assert updated.name == "Maria Silva"


async def test_apply_on_missing_document_returns_none(contacts):
    assert await contacts.apply(ObjectId(), {"$set": {"name": "x"}}, expected_version=1) is None
    assert await contacts.get_by_id("not-an-id") is None


async def test_apply_guard_blocks_non_matching_documents(contacts):
    contact = await contacts.create({"name": "Maria", "phone": "11999990000", "status": "lost"})

    with pytest.raises(ConflictError):
        await contacts.apply(contact.id, {"$set": {"notes": "x"}}, guard={"status": {"$ne": "lost"}})
    assert (await contacts.get_by_id(contact.id)).version == 1

    updated = await contacts.apply(contact.id, {"$set": {"notes": "x"}}, guard={"status": "lost"})
    assert updated.notes == "x"
    assert await contacts.apply(ObjectId(), {"$set": {"notes": "x"}}, guard={"status": "lost"}) is None


async def test_parse_id_rejects_malformed_ids(contacts):
    with pytest.raises(BadRequestError):
        contacts.parse_id("not-an-id")
    oid = ObjectId()
    assert contacts.parse_id(str(oid)) == oid


async def test_list_and_count(contacts):
    agency_id = ObjectId()
    for i in range(3):
        await contacts.create({"name": f"Lead {i}", "phone": f"1199999000{i}", "agency_id": agency_id})
    await contacts.create({"name": "Outro", "phone": "11888880000", "agency_id": ObjectId()})

    assert await contacts.count({"agency_id": agency_id}) == 3
    page = await contacts.list_by({"agency_id": agency_id}, skip=1, limit=1, sort=[("name", 1)])
    assert [c.name for c in page] == ["Lead 1"]
    assert len(await contacts.list_by({"agency_id": agency_id}, limit=0)) == 3
