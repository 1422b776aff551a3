# tests/modules/people/test_auth_api.py
import pytest
from httpx import AsyncClient

from conftest import TEST_PASSWORD

pytestmark = pytest.mark.asyncio

API = "/api/v1"


async def test_register_creates_viewer_without_agency(client: AsyncClient):
    response = await client.post(f"{API}/auth/register", json={
        "email": "Corretor@Example.com", "password": "secret123", "name": "Corretor",
    })
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["access_token"]
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "corretor@example.com"
    assert body["user"]["role"] == "viewer"
    assert body["user"]["agency_id"] is None
    assert "hashed_password" not in body["user"]


async def test_bootstrap_email_registers_as_admin(client: AsyncClient):
    response = await client.post(f"{API}/auth/register", json={
        "email": "root@example.com", "password": "secret123", "name": "Root",
    })
    assert response.status_code == 201
    assert response.json()["user"]["role"] == "admin"


async def test_duplicate_email_is_conflict(client: AsyncClient, seed):
    await seed.user(email="dup@example.com")
    response = await client.post(f"{API}/auth/register", json={
        "email": "dup@example.com", "password": "secret123", "name": "Dup",
    })
    assert response.status_code == 409


async def test_login_and_me(client: AsyncClient, seed):
    user = await seed.user("manager", email="login@example.com")
    response = await client.post(f"{API}/auth/login", data={"username": "login@example.com", "password": TEST_PASSWORD})
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]

    me = await client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == str(user.id)
    assert me.json()["role"] == "manager"


async def test_login_with_wrong_password(client: AsyncClient, seed):
    await seed.user(email="wrong@example.com")
    response = await client.post(f"{API}/auth/login", data={"username": "wrong@example.com", "password": "nope-nope"})
    assert response.status_code == 401


async def test_requests_without_valid_token_are_rejected(client: AsyncClient):
    assert (await client.get(f"{API}/users/me")).status_code == 401
    response = await client.get(f"{API}/users/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


async def test_inactive_user_token_is_refused(client: AsyncClient, seed):
    user = await seed.user(is_active=False)
    response = await client.get(f"{API}/users/me", headers=seed.headers(user))
    assert response.status_code == 403


async def test_role_change_is_admin_only(client: AsyncClient, seed):
    admin = await seed.user("admin")
    agency = await seed.agency()
    manager = await seed.member(agency, "manager")
    target = await seed.member(agency, "viewer")

    denied = await client.patch(
        f"{API}/users/{target.id}/role", json={"role": "agent"}, headers=seed.headers(manager)
    )
    assert denied.status_code == 403

    allowed = await client.patch(
        f"{API}/users/{target.id}/role", json={"role": "agent"}, headers=seed.headers(admin)
    )
    assert allowed.status_code == 200
    assert allowed.json()["role"] == "agent"


async def test_users_read_their_own_profile_but_not_other_tenants(client: AsyncClient, seed):
    loner = await seed.user("viewer")
    outsider = await seed.member(await seed.agency(), "manager")

    own = await client.get(f"{API}/users/{loner.id}", headers=seed.headers(loner))
    assert own.status_code == 200

    other = await client.get(f"{API}/users/{loner.id}", headers=seed.headers(outsider))
    assert other.status_code == 403
