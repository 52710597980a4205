"""
Conversation Service - one inbound event, one turn.

Admission (guard) -> per-phone lock -> load session -> engine -> persist ->
dispatch. Whatever goes wrong inside the turn is logged here and never
reaches the webhook response: the gateway always gets a 200 for events it
delivered, otherwise it redelivers and the customer gets duplicate replies.
"""
from typing import Any

from app.core.logging import get_logger
from app.core.validation import PhoneNumberValidator
from app.domain.inbound import InboundMessage
from app.domain.services.dispatcher import OutboundDispatcher
from app.domain.services.message_log_service import MessageLogService
from app.domain.session_store import SessionStore
from app.domain.webhook_guard import WebhookGuard
from app.state_machine.engine import ConversationEngine

logger = get_logger(__name__)


class ConversationService:

    def __init__(
        self,
        store: SessionStore,
        engine: ConversationEngine,
        dispatcher: OutboundDispatcher,
        guard: WebhookGuard,
        message_log: MessageLogService | None = None,
    ):
        self.store = store
        self.engine = engine
        self.dispatcher = dispatcher
        self.guard = guard
        self.message_log = message_log

    async def process_incoming(self, event: InboundMessage) -> dict[str, Any]:
        phone = (event.phone or "").strip()
        content = event.content

        decision = await self.guard.check_admission(
            phone=phone,
            from_me=event.from_me,
            message_id=event.delivery_id,
            message_type=event.type or "",
            content=content,
        )
        if decision is not None:
            return {"success": True, decision.value: True}

        if not event.is_user_message:
            logger.info(
                "Event type not processed",
                extra_data={
                    "phone": PhoneNumberValidator.mask(phone),
                    "type": event.type,
                    "has_text": event.text is not None,
                },
            )
            return {"success": True, "processed": False}

        async with self.guard.phone_lock(phone) as acquired:
            if not acquired:
                return {"success": True, "locked": True}
            await self._run_turn(phone, content, event)

        return {"success": True, "processed": True}

    async def _run_turn(self, phone: str, content: str, event: InboundMessage) -> None:
        try:
            if self.message_log is not None:
                await self.message_log.log_incoming(
                    phone,
                    content,
                    event.type or "text",
                    metadata={"message_id": event.delivery_id},
                )

            session = await self.store.get_or_create(phone)
            step = await self.engine.process(content, session)
            if step is None:
                logger.info(
                    "Input ignored in current step",
                    extra_data={"phone": PhoneNumberValidator.mask(phone), "step": session.current_step},
                )
                return

            await self.store.update(phone, step.step.value, content, step.data_update)
            await self.dispatcher.send(phone, step)
        except Exception as e:
            logger.error(
                "Turn failed",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "error": str(e)},
                exc_info=True,
            )
