"""
Webhook Guard - decides whether an inbound gateway event gets processed.

Checks run in order and the first hit short-circuits:

1. self-echo: events the gateway reports for our own outgoing messages
2. delivery dedup: ``zapi:msg:<messageId>`` (gateway retries)
3. content debounce: ``zapi:debounce:<sha256(phone|type|content)>`` (double taps)
4. per-phone lock: ``zapi:lock:<phone>`` (one turn at a time per customer)

Every key is written with ``SET NX EX``. If Redis cannot be reached the check
is skipped and the event is processed: a duplicate reply is better than a
customer who gets no answer.
"""
import hashlib
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator

from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import REDIS_ERRORS, get_redis
from app.core.validation import PhoneNumberValidator

logger = get_logger(__name__)

MESSAGE_KEY_PREFIX = "zapi:msg:"
DEBOUNCE_KEY_PREFIX = "zapi:debounce:"
LOCK_KEY_PREFIX = "zapi:lock:"

# apaga a trava só se ainda for nossa; uma trava expirada pode já ser de outro turno
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class GuardDecision(str, Enum):
    """Why an event was not processed; the value is the flag returned to the gateway"""
    IGNORED_FROM_ME = "ignored_from_me"
    DEDUPED = "deduped"
    DEBOUNCED = "debounced"
    LOCKED = "locked"


def debounce_signature(phone: str, message_type: str, content: str) -> str:
    raw = f"{phone}|{message_type}|{content}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class WebhookGuard:

    def __init__(
        self,
        dedup_ttl_seconds: int | None = None,
        debounce_ttl_seconds: int | None = None,
        lock_ttl_seconds: int | None = None,
    ):
        self.dedup_ttl_seconds = dedup_ttl_seconds or settings.MESSAGE_DEDUP_TTL_SECONDS
        self.debounce_ttl_seconds = debounce_ttl_seconds or settings.CONTENT_DEBOUNCE_TTL_SECONDS
        self.lock_ttl_seconds = lock_ttl_seconds or settings.PHONE_LOCK_TTL_SECONDS

    async def _set_if_absent(self, key: str, ttl: int, value: str = "1") -> bool:
        """True when the key was written (first sighting) or Redis is unavailable"""
        try:
            redis = await get_redis()
            return bool(await redis.set(key, value, nx=True, ex=ttl))
        except REDIS_ERRORS as e:
            logger.warning(
                "Redis unavailable for webhook guard, failing open",
                extra_data={"key_prefix": key.split(":")[1], "error": str(e)},
            )
            return True

    async def _release(self, key: str, token: str) -> None:
        try:
            redis = await get_redis()
            released = await redis.eval(RELEASE_LOCK_SCRIPT, 1, key, token)
            if not released:
                logger.warning(
                    "Phone lock expired before the turn finished",
                    extra_data={
                        "phone": PhoneNumberValidator.mask(key.removeprefix(LOCK_KEY_PREFIX)),
                        "ttl_seconds": self.lock_ttl_seconds,
                    },
                )
        except REDIS_ERRORS as e:
            # o TTL curto libera a trava de qualquer forma
            logger.warning("Failed to release phone lock", extra_data={"error": str(e)})

    async def check_admission(
        self,
        *,
        phone: str,
        from_me: bool,
        message_id: str | None,
        message_type: str,
        content: str,
    ) -> GuardDecision | None:
        """
        Run checks 1-3. Returns the rejection reason, or None when the event
        should go on to the per-phone lock.
        """
        if from_me:
            return GuardDecision.IGNORED_FROM_ME

        if message_id:
            first = await self._set_if_absent(f"{MESSAGE_KEY_PREFIX}{message_id}", self.dedup_ttl_seconds)
            if not first:
                logger.info(
                    "Duplicate webhook delivery ignored",
                    extra_data={"phone": PhoneNumberValidator.mask(phone), "message_id": message_id},
                )
                return GuardDecision.DEDUPED

        signature = debounce_signature(phone, message_type, content)
        first = await self._set_if_absent(f"{DEBOUNCE_KEY_PREFIX}{signature}", self.debounce_ttl_seconds)
        if not first:
            logger.info(
                "Repeated content debounced",
                extra_data={"phone": PhoneNumberValidator.mask(phone), "type": message_type},
            )
            return GuardDecision.DEBOUNCED

        return None

    @asynccontextmanager
    async def phone_lock(self, phone: str) -> AsyncIterator[bool]:
        """
        Per-phone mutual exclusion.

        Yields True when the lock is held (or Redis is down) and False when
        another turn for the same phone is running. A lock taken here is
        released on every exit path, including exceptions.
        """
        key = f"{LOCK_KEY_PREFIX}{phone}"
        token = uuid.uuid4().hex
        acquired = await self._set_if_absent(key, self.lock_ttl_seconds, token)
        if not acquired:
            logger.info(
                "Phone busy, event dropped",
                extra_data={"phone": PhoneNumberValidator.mask(phone)},
            )
        try:
            yield acquired
        finally:
            if acquired:
                await self._release(key, token)
