"""
Z-API Webhook Handler - inbound WhatsApp events
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.dependencies.services import get_conversation_service
from app.core.logging import get_logger
from app.core.validation import PhoneNumberValidator
from app.domain.conversation_service import ConversationService
from app.domain.inbound import InboundMessage

logger = get_logger(__name__)

router = APIRouter()


def _invalid_payload(reason: str) -> JSONResponse:
    logger.warning("Invalid webhook payload", extra_data={"reason": reason})
    return JSONResponse(status_code=400, content={"error": "Payload inválido"})


@router.post(
    "/whatsapp",
    summary="Webhook - Z-API (mensagens recebidas)",
    description=(
        "Entrada dos eventos da Z-API. Eventos duplicados, repetidos ou enviados "
        "pela própria instância são descartados com 200 e uma flag na resposta."
    ),
    responses={
        200: {"description": "Evento aceito ou descartado"},
        400: {"description": "Payload sem phone ou type"},
    },
)
async def zapi_webhook(
    request: Request,
    service: ConversationService = Depends(get_conversation_service),
):
    try:
        body = await request.json()
    except ValueError:
        return _invalid_payload("body is not JSON")
    if not isinstance(body, dict):
        return _invalid_payload("body is not an object")

    try:
        event = InboundMessage.model_validate(body)
    except ValidationError as e:
        return _invalid_payload(str(e.errors()[:3]))

    if not event.phone or not event.type:
        return _invalid_payload("missing phone or type")

    logger.info(
        "Webhook received",
        extra_data={
            "phone": PhoneNumberValidator.mask(event.phone),
            "type": event.type,
            "status": body.get("status"),
            "message_id": event.delivery_id,
        },
    )
    return await service.process_incoming(event)
