"""
Session Store - Redis cache in front of the durable SQL table.

Reads go cache -> database -> new default session. Writes go to the database
first, then the cache entry is rebuilt from the fresh durable state with the
partial update deep-merged on top.

Each tier degrades on its own: a Redis outage means database-only
operation, a database outage means cache-only operation, and with both down
the session lives only for the current turn. None of these raise to the
caller; the conversation keeps answering.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import REDIS_ERRORS, get_redis
from app.core.validation import PhoneNumberValidator
from app.db.models.conversation_session import ConversationSession
from app.domain.session import Session, SessionData, deep_merge

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "session:"

# asyncpg raises OSError subclasses on refused connections before SQLAlchemy wraps them
DURABLE_ERRORS = (SQLAlchemyError, OSError)


def cache_key(phone: str) -> str:
    return f"{CACHE_KEY_PREFIX}{phone}"


class SessionCache(ABC):

    @abstractmethod
    async def get(self, phone: str) -> Session | None:
        ...

    @abstractmethod
    async def set(self, session: Session) -> None:
        ...

    @abstractmethod
    async def delete(self, phone: str) -> None:
        ...


class NullSessionCache(SessionCache):
    """Cache that never holds anything; used when Redis is not configured"""

    async def get(self, phone: str) -> Session | None:
        return None

    async def set(self, session: Session) -> None:
        return None

    async def delete(self, phone: str) -> None:
        return None


class RedisSessionCache(SessionCache):
    """JSON-serialized sessions under ``session:<phone>`` with a TTL"""

    def __init__(self, ttl_seconds: int | None = None):
        self.ttl_seconds = ttl_seconds or settings.SESSION_CACHE_TTL_SECONDS

    async def get(self, phone: str) -> Session | None:
        try:
            redis = await get_redis()
            raw = await redis.get(cache_key(phone))
        except REDIS_ERRORS as e:
            logger.warning(
                "Session cache read failed, falling back to database",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "error": str(e)},
            )
            return None

        if raw is None:
            return None

        try:
            return Session.from_cache(raw)
        except (ValidationError, ValueError) as e:
            # entrada corrompida ou de versão antiga: tratada como miss
            logger.warning(
                "Discarding unreadable cached session",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "error": str(e)},
            )
            await self.delete(phone)
            return None

    async def set(self, session: Session) -> None:
        try:
            redis = await get_redis()
            await redis.set(cache_key(session.phone), session.to_cache(), ex=self.ttl_seconds)
        except REDIS_ERRORS as e:
            logger.warning(
                "Session cache write failed",
                extra_data={"phone": PhoneNumberValidator.mask(session.phone), "error": str(e)},
            )

    async def delete(self, phone: str) -> None:
        try:
            redis = await get_redis()
            await redis.delete(cache_key(phone))
        except REDIS_ERRORS as e:
            logger.warning(
                "Session cache delete failed",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "error": str(e)},
            )


class SqlSessionRepository:
    """Durable sessions in ``zapflow_sessions``; errors propagate to the store"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_session(row: ConversationSession) -> Session:
        return Session(
            phone=row.phone,
            current_step=row.current_step,
            last_message=row.last_message,
            data=SessionData.from_dict(row.context),
            created_at=row.created_at or datetime.now(timezone.utc),
            updated_at=row.updated_at or datetime.now(timezone.utc),
        )

    async def load(self, phone: str) -> Session | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ConversationSession).where(ConversationSession.phone == phone)
            )
            row = result.scalar_one_or_none()
            return self._to_session(row) if row else None

    async def create(self, phone: str) -> Session:
        session = Session.new(phone)
        async with self._session_factory() as db:
            row = ConversationSession(
                phone=phone,
                current_step=session.current_step,
                context=session.data.to_dict(),
            )
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                # outra requisição criou a linha primeiro
                await db.rollback()
                existing = await self.load(phone)
                if existing is not None:
                    return existing
                raise
            await db.refresh(row)
            return self._to_session(row)

    async def save(
        self,
        phone: str,
        step: str,
        last_message: str | None,
        partial_data: dict[str, Any],
    ) -> None:
        """Upsert step and last message; ``context`` is shallow-merged with the partial"""
        async with self._session_factory() as db:
            result = await db.execute(
                select(ConversationSession).where(ConversationSession.phone == phone)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = ConversationSession(
                    phone=phone,
                    context=SessionData().merge(partial_data).to_dict(),
                )
                db.add(row)
            else:
                # novo dict para o SQLAlchemy detectar a mudança na coluna JSON
                row.context = SessionData.from_dict(row.context).merge(partial_data).to_dict()
            row.current_step = step
            row.last_message = last_message
            await db.commit()

    async def delete(self, phone: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(ConversationSession).where(ConversationSession.phone == phone)
            )
            await db.commit()
            return (result.rowcount or 0) > 0


class SessionStore:
    """The only reader and writer of conversation sessions"""

    def __init__(
        self,
        repository: SqlSessionRepository,
        cache: SessionCache | None = None,
    ):
        self.repository = repository
        self.cache = cache or NullSessionCache()

    async def get_or_create(self, phone: str) -> Session:
        cached = await self.cache.get(phone)
        if cached is not None:
            return cached

        try:
            session = await self.repository.load(phone)
            if session is None:
                session = await self.repository.create(phone)
                logger.info(
                    "Session created",
                    extra_data={"phone": PhoneNumberValidator.mask(phone)},
                )
        except DURABLE_ERRORS as e:
            logger.warning(
                "Durable session store unavailable, using ephemeral session",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "error": str(e)},
            )
            session = Session.new(phone)

        await self.cache.set(session)
        return session

    async def update(
        self,
        phone: str,
        step: str,
        last_message: str | None = None,
        partial_data: dict[str, Any] | None = None,
    ) -> Session:
        """
        Persist a turn's result and return the session as it now stands.

        The durable write happens first. The cache entry is then dropped and
        rebuilt from a fresh durable read (or, if that fails, from the
        previous cache entry) with ``partial_data`` deep-merged on top.
        """
        partial_data = partial_data or {}
        previous = await self.cache.get(phone)

        try:
            await self.repository.save(phone, step, last_message, partial_data)
        except DURABLE_ERRORS as e:
            logger.warning(
                "Durable session write failed, keeping state in cache only",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "step": step, "error": str(e)},
            )

        await self.cache.delete(phone)

        base: Session | None = None
        try:
            base = await self.repository.load(phone)
        except DURABLE_ERRORS as e:
            logger.warning(
                "Durable session re-read failed",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "error": str(e)},
            )
        if base is None:
            base = previous or Session.new(phone)

        merged = deep_merge(base.data.to_dict(), partial_data)
        session = base.model_copy(update={
            "current_step": step,
            "last_message": last_message,
            "data": SessionData.from_dict(merged),
            "updated_at": datetime.now(timezone.utc),
        })
        await self.cache.set(session)
        return session

    async def delete(self, phone: str) -> bool:
        """Administrative reset: drop the cache entry and the durable row"""
        await self.cache.delete(phone)
        return await self.repository.delete(phone)

    async def clear_cache(self, phone: str) -> None:
        await self.cache.delete(phone)

    async def peek_cache(self, phone: str) -> Session | None:
        return await self.cache.get(phone)

    async def peek_durable(self, phone: str) -> Session | None:
        return await self.repository.load(phone)
