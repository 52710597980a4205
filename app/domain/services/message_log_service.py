"""
Message Log Service - append-only audit of inbound and outbound traffic.

Logging never breaks a turn: write failures are logged and dropped.
"""
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.core.validation import PhoneNumberValidator
from app.db.models.message_log import MessageDirection, MessageLog

logger = get_logger(__name__)


class MessageLogService:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(
        self,
        phone: str,
        message: str,
        direction: MessageDirection,
        message_type: str = "text",
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        try:
            async with self._session_factory() as db:
                db.add(MessageLog(
                    phone=phone,
                    message=message or "",
                    direction=direction.value,
                    message_type=message_type,
                    meta=metadata or {},
                ))
                await db.commit()
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Failed to write message log",
                extra_data={
                    "phone": PhoneNumberValidator.mask(phone),
                    "direction": direction.value,
                    "error": str(e),
                },
            )
            return False

    async def log_incoming(
        self,
        phone: str,
        message: str,
        message_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        return await self.record(phone, message, MessageDirection.INCOMING, message_type, metadata)

    async def log_outgoing(
        self,
        phone: str,
        message: str,
        message_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        return await self.record(phone, message, MessageDirection.OUTGOING, message_type, metadata)

    async def recent(self, phone: str, limit: int = 20) -> list[MessageLog]:
        """Newest first; used by the admin session view"""
        async with self._session_factory() as db:
            result = await db.execute(
                select(MessageLog)
                .where(MessageLog.phone == phone)
                .order_by(MessageLog.created_at.desc(), MessageLog.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
