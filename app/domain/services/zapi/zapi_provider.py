"""
Z-API Provider - BaseMessagingProvider over the Z-API REST gateway.

Endpoints live under ``{ZAPI_BASE_URL}/instances/{instance}/token/{token}``
and every request carries the ``Client-Token`` header.
"""
import asyncio
import unicodedata
from typing import Any

import httpx

from app.core.circuit_breaker import CircuitBreaker
from app.core.config import settings
from app.core.exceptions import MessagingGatewayError
from app.core.logging import get_logger
from app.core.validation import PhoneNumberValidator
from app.domain.services.zapi.base_provider import BaseMessagingProvider

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def mask_secret(value: str) -> str:
    return f"{value[:8]}..." if value else "undefined"


class ZApiProvider(BaseMessagingProvider):

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        *,
        http_client: httpx.AsyncClient | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
    ) -> None:
        self._circuit_breaker = circuit_breaker
        self._base_url = (
            f"{settings.ZAPI_BASE_URL}/instances/{settings.ZAPI_INSTANCE}/token/{settings.ZAPI_TOKEN}"
        )
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.ZAPI_TIMEOUT_SECONDS,
            headers={
                "Client-Token": settings.ZAPI_CLIENT_TOKEN,
                "Content-Type": "application/json; charset=utf-8",
                "Accept-Charset": "utf-8",
            },
        )
        # tentativas totais = retries extras + 1
        self._attempts = (max_retries if max_retries is not None else settings.HTTP_MAX_RETRIES) + 1
        self._base_delay = base_delay if base_delay is not None else settings.HTTP_RETRY_BASE_DELAY_SECONDS

        logger.info(
            "Z-API configuration",
            extra_data={
                "base_url": settings.ZAPI_BASE_URL,
                "instance": settings.ZAPI_INSTANCE,
                "token": mask_secret(settings.ZAPI_TOKEN),
                "client_token": mask_secret(settings.ZAPI_CLIENT_TOKEN),
            },
        )

    @property
    def provider_name(self) -> str:
        return "zapi"

    @staticmethod
    def _nfc(text: str) -> str:
        return unicodedata.normalize("NFC", text or "")

    # ── retry helper interno ──

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        payload: dict[str, Any] | None,
        operation_name: str,
    ) -> dict[str, Any]:
        """Request with exponential backoff; raises MessagingGatewayError when every attempt fails"""
        phone_masked = PhoneNumberValidator.mask((payload or {}).get("phone", ""))
        url = f"{self._base_url}/{endpoint}"

        for attempt in range(self._attempts):
            last = attempt == self._attempts - 1
            backoff = self._base_delay * (2 ** attempt)
            try:
                response = await self._http.request(method, url, json=payload)
            except httpx.TimeoutException:
                if not last:
                    logger.warning(
                        f"{operation_name} timeout, retrying",
                        extra_data={"phone": phone_masked, "attempt": attempt + 1, "backoff_seconds": backoff},
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise MessagingGatewayError(
                    message=f"/{endpoint} timeout after retries",
                    details={"operation": endpoint, "timeout": True, "attempts": self._attempts},
                )
            except httpx.RequestError as exc:
                if not last:
                    logger.warning(
                        f"Network error in {operation_name}, retrying",
                        extra_data={
                            "phone": phone_masked,
                            "error": str(exc),
                            "attempt": attempt + 1,
                            "backoff_seconds": backoff,
                        },
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise MessagingGatewayError(
                    message=f"/{endpoint} network error: {exc}",
                    details={"operation": endpoint, "network_error": True, "attempts": self._attempts},
                )

            if response.status_code < 400:
                logger.debug(
                    "Z-API response",
                    extra_data={"operation": endpoint, "status_code": response.status_code},
                )
                return response.json() if response.content else {}

            if response.status_code in TRANSIENT_STATUS_CODES and not last:
                logger.warning(
                    f"Transient error in {operation_name}, retrying",
                    extra_data={
                        "phone": phone_masked,
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "max_attempts": self._attempts,
                        "backoff_seconds": backoff,
                    },
                )
                await asyncio.sleep(backoff)
                continue

            raise MessagingGatewayError.from_response(endpoint, response)

        # range vazio só com _attempts <= 0, impedido pela validação de settings
        raise MessagingGatewayError(message=f"/{endpoint} was not attempted")

    async def _post(self, endpoint: str, payload: dict[str, Any], operation_name: str) -> dict[str, Any]:
        async def _send() -> dict[str, Any]:
            return await self._request_with_retry("POST", endpoint, payload, operation_name)

        return await self._circuit_breaker.execute(_send)

    # ── envio de mensagens ──

    async def send_text(self, phone: str, message: str) -> dict[str, Any]:
        payload = {
            "phone": phone,
            "message": self._nfc(message),
            "messageType": "text",
        }
        return await self._post("send-text", payload, "send text")

    async def send_buttons(
        self,
        phone: str,
        message: str,
        buttons: list[dict[str, str]],
    ) -> dict[str, Any]:
        payload = {
            "phone": phone,
            "message": self._nfc(message),
            "messageType": "button",
            "instance": settings.ZAPI_INSTANCE,
            "buttons": buttons,
        }
        return await self._post("send-button", payload, "send buttons")

    async def send_list(self, phone: str, message: str, list_payload: dict[str, Any]) -> dict[str, Any]:
        payload = {
            "phone": phone,
            "message": self._nfc(message),
            "messageType": "list",
            "instance": settings.ZAPI_INSTANCE,
            "list": list_payload,
        }
        return await self._post("send-list", payload, "send list")

    async def send_option_list(
        self,
        phone: str,
        message: str,
        option_list: dict[str, Any],
    ) -> dict[str, Any]:
        payload = {
            "phone": phone,
            "message": self._nfc(message),
            "optionList": option_list,
        }
        return await self._post("send-option-list", payload, "send option list")

    async def instance_status(self) -> dict[str, Any]:
        async def _get() -> dict[str, Any]:
            return await self._request_with_retry("GET", "instance/status", None, "instance status")

        return await self._circuit_breaker.execute(_get)

    async def aclose(self) -> None:
        await self._http.aclose()
