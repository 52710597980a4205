"""
Redis client: async singleton shared by the session cache, the webhook
guard and the due-date notifier.

Timeouts are short on purpose: every Redis consumer fails open, and a hung
socket would otherwise stall the webhook instead of degrading it.
"""
import asyncio
from urllib.parse import urlparse

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None
_init_lock = asyncio.Lock()

REDIS_SOCKET_TIMEOUT_SECONDS = 2.0

# what callers catch to fail open (OSError covers refused connections)
REDIS_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def mask_redis_url(url: str) -> str:
    """Esconde a senha da URL para logs (redis://:****@host:6379)"""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(f":{parsed.password}@", ":****@")
    return url


async def get_redis() -> aioredis.Redis:
    """Singleton com pool de conexões; a primeira chamada faz ping"""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    async with _init_lock:
        # outra corrotina pode ter inicializado enquanto esperávamos o lock
        if _redis_client is not None:
            return _redis_client

        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
        )
        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        _redis_client = client
        logger.info("Redis client initialized", extra_data={
            "url": mask_redis_url(settings.REDIS_URL),
        })
    return _redis_client


async def close_redis() -> None:
    """Fecha a conexão no shutdown da aplicação"""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
