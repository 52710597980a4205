"""
Messaging provider interface.

Business logic (the dispatcher, the due-date notifier, admin endpoints)
depends only on this interface, never on the Z-API HTTP details.
"""
from abc import ABC, abstractmethod
from typing import Any


class BaseMessagingProvider(ABC):
    """
    Uniform interface for sending WhatsApp messages.

    Every implementation handles:
    - HTTP transport
    - retry + circuit breaker
    - NFC normalization of outgoing text
    """

    @abstractmethod
    async def send_text(self, phone: str, message: str) -> dict[str, Any]:
        """
        Send a plain text message.

        Raises:
            MessagingGatewayError: on send failure.
        """

    @abstractmethod
    async def send_buttons(
        self,
        phone: str,
        message: str,
        buttons: list[dict[str, str]],
    ) -> dict[str, Any]:
        """Send a message with reply buttons (``[{id, label}]``)"""

    @abstractmethod
    async def send_list(self, phone: str, message: str, list_payload: dict[str, Any]) -> dict[str, Any]:
        """Send a sectioned list (``{buttonText, sections}``)"""

    @abstractmethod
    async def send_option_list(
        self,
        phone: str,
        message: str,
        option_list: dict[str, Any],
    ) -> dict[str, Any]:
        """Send an option list (``{title, buttonLabel, options}``)"""

    @abstractmethod
    async def instance_status(self) -> dict[str, Any]:
        """Gateway instance status as reported by the provider"""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Name used in logs and diagnostics"""

    async def aclose(self) -> None:
        return None
