# tests/api/test_healthcheck.py
import pytest
from httpx import AsyncClient

from smartbroker.core.database import get_database
from smartbroker.main import app

pytestmark = pytest.mark.asyncio


class PingDB:
    def __init__(self, error: Exception = None):
        self.error = error

    async def command(self, name: str):
        if self.error:
            raise self.error
        return {"ok": 1}


async def test_healthcheck_ok(client: AsyncClient):
    app.dependency_overrides[get_database] = lambda: PingDB()
    response = await client.get("/api/v1/healthcheck")
    assert response.status_code == 200
    body = response.json()
    assert body["overall_status"] == "ok"
    assert body["components"]["database_mongodb"]["status"] == "ok"
    assert body["uptime_seconds"] >= 0


async def test_healthcheck_reports_database_failure(client: AsyncClient):
    app.dependency_overrides[get_database] = lambda: PingDB(RuntimeError("no servers available"))
    response = await client.get("/api/v1/healthcheck")
    assert response.status_code == 503
    body = response.json()
    assert body["overall_status"] == "error"
    assert "no servers available" in body["components"]["database_mongodb"]["message"]
