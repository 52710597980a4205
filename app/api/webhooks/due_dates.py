"""
Partner due-date webhook - billing reminders sent to the customer
"""
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.dependencies.services import get_due_date_notifier
from app.core.logging import get_logger
from app.domain.services.due_date_notifier import DueDateNotification, DueDateNotifier

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/partner-due-dates",
    summary="Webhook - vencimentos de cobranças",
    description=(
        "Recebe do backend parceiro um aviso de vencimento (próximo, hoje ou atrasado) "
        "e envia a mensagem ao cliente. Idempotente por cobrança e tipo de aviso."
    ),
    responses={
        200: {"description": "Mensagem enviada ou já enviada anteriormente"},
        400: {"description": "Payload inválido"},
        502: {"description": "Falha ao enviar a mensagem pela Z-API"},
    },
)
async def partner_due_dates(
    body: dict[str, Any] = Body(...),
    notifier: DueDateNotifier = Depends(get_due_date_notifier),
):
    try:
        notification = DueDateNotification.model_validate(body)
    except ValidationError as e:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        logger.warning("Invalid due-date payload", extra_data={"errors": details})
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Payload inválido", "details": details},
        )

    summary = {
        "alunoId": notification.alunoId,
        "cobrancaId": notification.cobrancaId,
        "webhookType": notification.webhookType.value,
    }

    result = await notifier.notify(notification)
    if result.already_processed:
        return {
            "success": True,
            "message": "Notificação já processada anteriormente",
            "idempotent": True,
            **summary,
        }
    if not result.sent:
        return JSONResponse(
            status_code=502,
            content={"success": False, "error": "Falha ao enviar mensagem"},
        )
    return {"success": True, "message": "Notificação enviada com sucesso", **summary}
