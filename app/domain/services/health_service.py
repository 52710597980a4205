"""
Health checks for the database, Redis and the Z-API instance.

Two levels:
- liveness: the process answers (no dependency checks)
- readiness: every external dependency is probed
"""
from typing import Any

from sqlalchemy import text

from app.core.exceptions import ExternalServiceException
from app.core.logging import get_logger, log_async_operation
from app.core.redis_client import REDIS_ERRORS, get_redis
from app.db.database import AsyncSessionLocal
from app.domain.services.zapi import get_messaging_provider

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# sem detalhes de infraestrutura na resposta pública
_ERROR_DB = "error: db_unavailable"
_ERROR_REDIS = "error: redis_unavailable"
_ERROR_ZAPI = "error: zapi_unavailable"
_ERROR_ZAPI_DISCONNECTED = "error: zapi_disconnected"


async def _check_db() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except Exception as e:
        logger.warning("Database health check failed", extra_data={"error": str(e)})
        return _ERROR_DB


async def _check_redis() -> str:
    try:
        client = await get_redis()
        await client.ping()
        return _CHECK_OK
    except REDIS_ERRORS as e:
        logger.warning("Redis health check failed", extra_data={"error": str(e)})
        return _ERROR_REDIS


async def _check_zapi() -> str:
    """The instance must answer and report ``connected: true``"""
    try:
        data = await get_messaging_provider().instance_status()
    except ExternalServiceException as e:
        logger.warning("Z-API health check failed", extra_data={"error": e.message})
        return _ERROR_ZAPI

    if not data.get("connected"):
        logger.warning("Z-API instance is up but not connected", extra_data={"response": data})
        return _ERROR_ZAPI_DISCONNECTED
    return _CHECK_OK


@log_async_operation("readiness_check")
async def check_readiness() -> dict[str, Any]:
    """
    Probe every dependency.

    ``status`` is "healthy" when all checks pass and "degraded" otherwise;
    ``db`` / ``redis`` / ``zapi`` carry "ok" or "error: ...".
    """
    checks = {
        "db": await _check_db(),
        "redis": await _check_redis(),
        "zapi": await _check_zapi(),
    }

    all_ok = all(v == _CHECK_OK for v in checks.values())
    if not all_ok:
        logger.warning("Readiness degraded", extra_data=checks)

    return {"status": _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED, **checks}
