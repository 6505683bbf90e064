"""
Liveness and readiness endpoints.

/health answers as long as the process is up. /health/ready also checks
that the configuration is complete and, outside mock mode, that the
warehouse accepts a query.
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...config.settings import Settings
from ...infrastructure.snowflake.client import get_snowflake_connection
from ..dependencies import SettingsDep, snowflake_config

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    name: str
    ok: bool
    detail: str | None = None


class ReadinessResponse(BaseModel):
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


def _check_configuration(settings: Settings) -> ReadinessCheck:
    missing = settings.validate_required_fields()
    if missing:
        return ReadinessCheck(name="configuration", ok=False, detail=f"missing {', '.join(missing)}")
    return ReadinessCheck(name="configuration", ok=True)


def _check_database(settings: Settings) -> ReadinessCheck:
    if settings.snowflake_mock_mode:
        return ReadinessCheck(name="database", ok=True, detail="in-memory store")

    try:
        with get_snowflake_connection(snowflake_config(settings)) as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("SELECT 1")
            finally:
                cursor.close()
    except Exception as e:
        return ReadinessCheck(name="database", ok=False, detail=str(e))
    return ReadinessCheck(name="database", ok=True)


@router.get(
    "",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Returns 200 while the process is running. Touches no dependencies.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        details={"mock_mode": {"snowflake": settings.snowflake_mock_mode}},
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Returns 200 when lessons can be booked and reported on, 503 otherwise.",
    responses={503: {"description": "Service not ready", "model": ReadinessResponse}},
)
def readiness_check(settings: SettingsDep, response: Response) -> ReadinessResponse:
    configuration = _check_configuration(settings)
    checks = [configuration]
    # a half-configured warehouse would only produce a connection error
    if configuration.ok:
        checks.append(_check_database(settings))

    ready = all(check.ok for check in checks)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Readiness check failed",
            extra={"checks": [check.model_dump() for check in checks]},
        )

    return ReadinessResponse(
        status="ready" if ready else "not_ready",
        version=__version__,
        checks=checks,
    )
