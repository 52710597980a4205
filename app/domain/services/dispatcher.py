"""
Outbound Dispatcher - turns a ConversationStep into exactly one gateway call.

Shape priority: option list, then list, then buttons, then plain text. A
send failure is logged and reported as ``False``; it never propagates into
the turn, the session has already been persisted by then.
"""
from app.core.exceptions import ExternalServiceException
from app.core.logging import get_logger
from app.core.validation import PhoneNumberValidator
from app.domain.services.message_log_service import MessageLogService
from app.domain.services.zapi.base_provider import BaseMessagingProvider
from app.state_machine.types import ConversationStep

logger = get_logger(__name__)


class OutboundDispatcher:

    def __init__(self, provider: BaseMessagingProvider, message_log: MessageLogService | None = None):
        self.provider = provider
        self.message_log = message_log

    async def send(self, phone: str, step: ConversationStep) -> bool:
        shape = step.shape
        try:
            if step.option_list:
                await self.provider.send_option_list(phone, step.message, step.option_list.to_payload())
            elif step.list:
                await self.provider.send_list(phone, step.message, step.list.to_payload())
            elif step.buttons:
                await self.provider.send_buttons(
                    phone, step.message, [button.to_payload() for button in step.buttons],
                )
            else:
                await self.provider.send_text(phone, step.message)
        except ExternalServiceException as e:
            logger.error(
                "Outbound message failed",
                extra_data={
                    "phone": PhoneNumberValidator.mask(phone),
                    "step": step.step.value,
                    "shape": shape,
                    "error": e.message,
                    "error_code": e.error_code.value,
                },
            )
            return False

        if self.message_log is not None:
            await self.message_log.log_outgoing(
                phone, step.message, shape, metadata={"step": step.step.value},
            )
        return True

    async def notify(self, phone: str, message: str, metadata: dict | None = None) -> bool:
        """One-way plain text notification (due-date reminders)"""
        try:
            await self.provider.send_text(phone, message)
        except ExternalServiceException as e:
            logger.error(
                "Notification failed",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "error": e.message},
            )
            return False

        if self.message_log is not None:
            await self.message_log.log_outgoing(phone, message, "notification", metadata=metadata)
        return True
