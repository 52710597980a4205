"""
Messaging gateway layer (Z-API).
"""
from app.domain.services.zapi.base_provider import BaseMessagingProvider
from app.domain.services.zapi.provider_factory import get_messaging_provider

__all__ = [
    "BaseMessagingProvider",
    "get_messaging_provider",
]
