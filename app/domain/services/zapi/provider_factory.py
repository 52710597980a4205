"""
Provider Factory - messaging provider singleton.
"""
from app.core.circuit_breaker import get_zapi_circuit_breaker
from app.core.logging import get_logger
from app.domain.services.zapi.base_provider import BaseMessagingProvider

logger = get_logger(__name__)

_provider: BaseMessagingProvider | None = None


def get_messaging_provider() -> BaseMessagingProvider:
    global _provider
    if _provider is None:
        from app.domain.services.zapi.zapi_provider import ZApiProvider

        _provider = ZApiProvider(circuit_breaker=get_zapi_circuit_breaker())
        logger.info(
            "Messaging provider initialized",
            extra_data={"provider": _provider.provider_name},
        )
    return _provider


async def close_messaging_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None


def reset_providers() -> None:
    """Reset the provider (tests only)"""
    global _provider
    _provider = None
