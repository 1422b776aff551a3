# smartbroker/api/endpoints/status.py
import time as process_time
from datetime import datetime, timezone
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends, Response, status as http_status
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from smartbroker.core.database import get_database


class ComponentStatus(BaseModel):
    status: Literal["ok", "error", "unavailable"] = "ok"
    message: Optional[str] = None


class HealthCheckResponse(BaseModel):
    overall_status: Literal["ok", "error"] = "ok"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    uptime_seconds: float = Field(..., description="Process uptime in seconds")
    components: Dict[str, ComponentStatus]


PROCESS_START_TIME = process_time.monotonic()

router = APIRouter()


@router.get(
    "/healthcheck",
    response_model=HealthCheckResponse,
    tags=["Status & Health"],
    summary="Application Health and Component Status Check",
)
async def get_application_health(db: AsyncIOMotorDatabase = Depends(get_database)):
    log = logger.bind(api_endpoint="/healthcheck GET")
    log.info("Performing application health check...")

    components: Dict[str, ComponentStatus] = {}
    critical_ok = True
    try:
        await db.command("ping")
        components["database_mongodb"] = ComponentStatus(status="ok")
    except Exception as e:
        err_msg = f"MongoDB connection check failed: {e}"
        log.error(err_msg)
        components["database_mongodb"] = ComponentStatus(status="error", message=err_msg)
        critical_ok = False

    payload = HealthCheckResponse(
        overall_status="ok" if critical_ok else "error",
        uptime_seconds=process_time.monotonic() - PROCESS_START_TIME,
        components=components,
    )
    status_code = http_status.HTTP_200_OK if critical_ok else http_status.HTTP_503_SERVICE_UNAVAILABLE
    return Response(
        content=payload.model_dump_json(exclude_none=True),
        status_code=status_code,
        media_type="application/json",
    )
