"""
Admin Endpoints - diagnostics and maintenance without direct DB access.

All routes require the ``X-Admin-API-Key`` header:
1. session inspection (cache, durable row, recent messages), cache clear and reset
2. Redis info and circuit breaker status
3. Z-API instance status and test message
4. forced partner token refresh
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from app.api.dependencies.admin_auth import require_admin_api_key
from app.api.dependencies.services import get_message_log, get_provider, get_session_store
from app.core.circuit_breaker import (
    CircuitBreaker,
    get_partner_circuit_breaker,
    get_zapi_circuit_breaker,
)
from app.core.logging import get_logger
from app.core.redis_client import get_redis, mask_redis_url
from app.core.config import settings
from app.core.exceptions import AppException, ErrorCode
from app.core.validation import PhoneNumberValidator, phone_validator
from app.domain.services.message_log_service import MessageLogService
from app.domain.services.partner.factory import get_token_provider
from app.domain.services.zapi import BaseMessagingProvider
from app.domain.session import Session
from app.domain.session_store import SessionStore

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_api_key)])

_AUTH_RESPONSES = {
    401: {"description": "Header X-Admin-API-Key ausente"},
    403: {"description": "Chave inválida ou não configurada"},
}

# campos do INFO do Redis que interessam para diagnóstico
_REDIS_INFO_FIELDS = (
    "redis_version",
    "uptime_in_seconds",
    "connected_clients",
    "used_memory_human",
    "keyspace_hits",
    "keyspace_misses",
)


# ─── Pydantic models ────────────────────────────────────────────────────────

class MessageLogResponse(BaseModel):
    id: int
    direction: str
    message_type: str
    message: str
    created_at: datetime | None


class SessionInspectionResponse(BaseModel):
    phone: str
    cache: dict[str, Any] | None
    durable: dict[str, Any] | None
    recent_messages: list[MessageLogResponse]


class TestMessageRequest(BaseModel):
    phone: str
    message: str = Field(min_length=1, max_length=4096)

    @field_validator("phone")
    @classmethod
    def digits_only_phone(cls, v):
        # aceita "+55 (71) 99999-0000" como o operador copia do WhatsApp
        return phone_validator(v)


def _session_view(session: Session | None) -> dict[str, Any] | None:
    return session.model_dump(mode="json", by_alias=True) if session else None


# ─── 1. Sessions ────────────────────────────────────────────────────────────

@router.get(
    "/sessions/{phone}",
    response_model=SessionInspectionResponse,
    summary="Inspecionar sessão",
    description="Sessão no cache, linha persistida e as últimas mensagens do telefone.",
    responses=_AUTH_RESPONSES,
)
async def inspect_session(
    phone: str,
    limit: int = Query(20, ge=1, le=200),
    store: SessionStore = Depends(get_session_store),
    message_log: MessageLogService = Depends(get_message_log),
) -> SessionInspectionResponse:
    recent = await message_log.recent(phone, limit=limit)
    return SessionInspectionResponse(
        phone=phone,
        cache=_session_view(await store.peek_cache(phone)),
        durable=_session_view(await store.peek_durable(phone)),
        recent_messages=[
            MessageLogResponse(
                id=row.id,
                direction=row.direction,
                message_type=row.message_type,
                message=row.message,
                created_at=row.created_at,
            )
            for row in recent
        ],
    )


@router.delete(
    "/sessions/{phone}/cache",
    summary="Limpar cache da sessão",
    description="Remove só a entrada do Redis; a próxima mensagem recarrega do banco.",
    responses=_AUTH_RESPONSES,
)
async def clear_session_cache(
    phone: str,
    store: SessionStore = Depends(get_session_store),
) -> dict[str, str]:
    await store.clear_cache(phone)
    logger.info("Session cache cleared by admin", extra_data={"phone": PhoneNumberValidator.mask(phone)})
    return {"message": f"Cache limpo para {phone}"}


@router.delete(
    "/sessions/{phone}",
    summary="Reiniciar sessão",
    description="Apaga cache e linha persistida; o cliente recomeça no welcome.",
    responses={**_AUTH_RESPONSES, 404: {"description": "Sessão não encontrada"}},
)
async def reset_session(
    phone: str,
    store: SessionStore = Depends(get_session_store),
) -> dict[str, Any]:
    deleted = await store.delete(phone)
    if not deleted:
        raise AppException(
            message="Sessão não encontrada",
            error_code=ErrorCode.SESSION_NOT_FOUND,
            status_code=404,
            details={"phone": PhoneNumberValidator.mask(phone)},
        )
    logger.info("Session reset by admin", extra_data={"phone": PhoneNumberValidator.mask(phone)})
    return {"phone": phone, "reset": True}


# ─── 2. Redis / circuit breakers ────────────────────────────────────────────

@router.get(
    "/redis/info",
    summary="Informações do Redis",
    responses=_AUTH_RESPONSES,
)
async def redis_info() -> dict[str, Any]:
    client = await get_redis()
    info = await client.info()
    return {
        "url": mask_redis_url(settings.REDIS_URL),
        **{field: info.get(field) for field in _REDIS_INFO_FIELDS},
    }


@router.get(
    "/circuit-breakers",
    summary="Status dos circuit breakers",
    description="Estado atual dos breakers da Z-API e do backend parceiro.",
    responses=_AUTH_RESPONSES,
)
async def circuit_breakers() -> list[dict[str, Any]]:
    # garante que os breakers conhecidos estejam registrados
    get_zapi_circuit_breaker()
    get_partner_circuit_breaker()
    return [cb.snapshot() for cb in CircuitBreaker.all_instances().values()]


# ─── 3. Z-API ───────────────────────────────────────────────────────────────

@router.get(
    "/zapi/status",
    summary="Status da instância Z-API",
    responses={**_AUTH_RESPONSES, 503: {"description": "Z-API indisponível"}},
)
async def zapi_status(
    provider: BaseMessagingProvider = Depends(get_provider),
) -> dict[str, Any]:
    return await provider.instance_status()


@router.post(
    "/zapi/test-message",
    summary="Enviar mensagem de teste",
    responses={**_AUTH_RESPONSES, 503: {"description": "Z-API indisponível"}},
)
async def send_test_message(
    request: TestMessageRequest,
    provider: BaseMessagingProvider = Depends(get_provider),
) -> dict[str, Any]:
    data = await provider.send_text(request.phone, request.message)
    logger.info("Test message sent by admin", extra_data={"phone": PhoneNumberValidator.mask(request.phone)})
    return {"success": True, "data": data}


# ─── 4. Partner token ───────────────────────────────────────────────────────

@router.post(
    "/partner/token/refresh",
    summary="Renovar token do backend parceiro",
    description="Força novo login. Sem usuário/senha configurados retorna 400.",
    responses={**_AUTH_RESPONSES, 400: {"description": "Credenciais não configuradas"}},
)
async def refresh_partner_token() -> dict[str, Any]:
    token_provider = get_token_provider()
    if not token_provider.has_credentials:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="PARTNER_USERNAME/PARTNER_PASSWORD não configurados",
        )
    await token_provider.refresh()
    return {"refreshed": True}
