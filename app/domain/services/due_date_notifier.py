"""
Due-date notifications pushed by the partner backend.

The backend calls us once per (charge, bucket). The idempotency key is only
written after the message went out, so a failed send can be retried by the
caller; if Redis is down the notification is sent anyway.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import REDIS_ERRORS, get_redis
from app.core.validation import PhoneNumberValidator
from app.domain.services.dispatcher import OutboundDispatcher
from app.state_machine.messages import format_br_date

logger = get_logger(__name__)

IDEMPOTENCY_KEY_PREFIX = "metta:webhook:"


class DueDateBucket(str, Enum):
    UPCOMING = "vencimento_proximo"
    TODAY = "vencimento_hoje"
    OVERDUE = "vencimento_atrasado"


class ChargeKind(str, Enum):
    BOLETO = "boleto"
    CARNE = "carne"
    PIX = "pix"


class DueDateNotification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    alunoId: int = Field(gt=0)
    alunoNome: str = Field(min_length=1, max_length=255)
    alunoTelefone: str = Field(pattern=r"^\d{10,15}$")
    alunoEmail: str | None = Field(default=None, max_length=255)
    cobrancaId: str = Field(min_length=1, max_length=50)
    tipo: ChargeKind
    valor: float = Field(gt=0)
    vencimento: date
    descricao: str | None = Field(default=None, max_length=500)
    diasParaVencimento: int | None = None
    turmaId: str | int | None = None
    turmaNome: str | None = Field(default=None, max_length=255)
    webhookType: DueDateBucket

    @field_validator("cobrancaId", mode="before")
    @classmethod
    def charge_id_as_text(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator("vencimento", mode="before")
    @classmethod
    def date_part(cls, v):
        # "2025-03-10T03:00:00.000Z" -> 2025-03-10
        if isinstance(v, str) and len(v) > 10:
            return v[:10]
        return v

    @property
    def idempotency_key(self) -> str:
        return f"{IDEMPOTENCY_KEY_PREFIX}{self.cobrancaId}:{self.webhookType.value}"


def render_due_date_message(notification: DueDateNotification) -> str:
    kind = notification.tipo.value.upper()
    amount = f"R$ {notification.valor:.2f}"
    due = format_br_date(notification.vencimento)

    lines = [f"Olá {notification.alunoNome}!", ""]
    if notification.webhookType is DueDateBucket.UPCOMING:
        lines += [
            "Lembrete de vencimento.",
            f"Sua cobrança de {kind} no valor de {amount} vence em {notification.diasParaVencimento or 0} dias.",
        ]
    elif notification.webhookType is DueDateBucket.TODAY:
        lines += [
            "Atenção: vencimento hoje.",
            f"Sua cobrança de {kind} no valor de {amount} vence HOJE.",
        ]
    else:
        days_late = abs(notification.diasParaVencimento or 0)
        lines += [
            "Cobrança atrasada.",
            f"Sua cobrança de {kind} no valor de {amount} está atrasada há {days_late} dias.",
        ]
    lines += [f"Data de vencimento: {due}.", ""]

    if notification.turmaNome:
        lines += [f"Turma: {notification.turmaNome}.", ""]

    lines += [
        "Para efetuar o pagamento:",
        "• Acesse o link do boleto/PIX",
        "• Use o código PIX para pagamento instantâneo",
        "• Ou escaneie o QR Code",
        "",
        f"Dúvidas? Fale com a {settings.STUDIO_NAME}.",
    ]
    if settings.SUPPORT_WHATSAPP:
        lines.append(f"WhatsApp: {settings.SUPPORT_WHATSAPP}")
    if settings.SUPPORT_EMAIL:
        lines.append(f"Email: {settings.SUPPORT_EMAIL}")
    return "\n".join(lines)


@dataclass
class NotificationResult:
    sent: bool
    already_processed: bool = False


class DueDateNotifier:

    def __init__(self, dispatcher: OutboundDispatcher, ttl_seconds: int | None = None):
        self.dispatcher = dispatcher
        self.ttl_seconds = ttl_seconds or settings.DUE_DATE_IDEMPOTENCY_TTL_SECONDS

    async def _already_processed(self, key: str) -> bool:
        try:
            redis = await get_redis()
            return bool(await redis.get(key))
        except REDIS_ERRORS as e:
            logger.warning("Redis unavailable for due-date idempotency, sending anyway", extra_data={"error": str(e)})
            return False

    async def _mark_processed(self, key: str) -> None:
        try:
            redis = await get_redis()
            await redis.set(key, "processed", ex=self.ttl_seconds)
        except REDIS_ERRORS as e:
            logger.warning("Failed to mark due-date notification", extra_data={"key": key, "error": str(e)})

    async def notify(self, notification: DueDateNotification) -> NotificationResult:
        key = notification.idempotency_key
        if await self._already_processed(key):
            logger.info(
                "Due-date notification already processed",
                extra_data={"cobranca_id": notification.cobrancaId, "bucket": notification.webhookType.value},
            )
            return NotificationResult(sent=False, already_processed=True)

        sent = await self.dispatcher.notify(
            notification.alunoTelefone,
            render_due_date_message(notification),
            metadata={"cobrancaId": notification.cobrancaId, "webhookType": notification.webhookType.value},
        )
        if not sent:
            return NotificationResult(sent=False)

        await self._mark_processed(key)
        logger.info(
            "Due-date notification sent",
            extra_data={
                "phone": PhoneNumberValidator.mask(notification.alunoTelefone),
                "bucket": notification.webhookType.value,
            },
        )
        return NotificationResult(sent=True)
