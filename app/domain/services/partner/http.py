"""
HTTP plumbing shared by the partner gateway and the payment backend.

One request = circuit breaker check -> ``retry_async`` over the attempt ->
error mapping. A 401/403 drops the cached token and, when login credentials
are configured, the request is replayed once with a fresh token.
"""
from typing import Any, Callable

import httpx

from app.core.circuit_breaker import CircuitBreaker
from app.core.config import settings
from app.core.exceptions import (
    CircuitBreakerOpenError,
    ExternalServiceException,
    PartnerApiError,
    ServiceTimeoutError,
)
from app.core.logging import get_logger
from app.core.retry import is_transient_http_error, retry_async, retry_kwargs
from app.domain.services.partner.token_provider import TokenProvider

logger = get_logger(__name__)

AUTH_FAILURE_STATUSES = (401, 403)


class PartnerHttpClient:

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_provider: TokenProvider,
        circuit_breaker: CircuitBreaker,
        *,
        base_url: str,
        service_name: str = "partner_api",
        error_factory: Callable[..., ExternalServiceException] = PartnerApiError.from_response,
        api_key: str | None = None,
    ):
        self._http = http_client
        self._tokens = token_provider
        self._breaker = circuit_breaker
        self._base_url = base_url.rstrip("/")
        self._service_name = service_name
        self._error_factory = error_factory
        self._api_key = api_key if api_key is not None else settings.PARTNER_API_KEY

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = await self._tokens.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if self._api_key:
            headers["X-Api-Key"] = self._api_key
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = await self._headers()
        try:
            return await self._http.request(
                method,
                f"{self._base_url}{path}",
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException:
            raise ServiceTimeoutError(self._service_name, settings.HTTP_TIMEOUT_SECONDS)

    async def _attempt(self, method: str, path: str, *, operation: str, allow_404: bool, **kwargs: Any) -> Any:
        response = await self._send(method, path, **kwargs)

        if response.status_code in AUTH_FAILURE_STATUSES and self._tokens.has_credentials:
            logger.warning(
                f"{self._service_name} rejected token, logging in again",
                extra_data={"operation": operation, "status_code": response.status_code},
            )
            self._tokens.invalidate()
            await self._tokens.refresh()
            response = await self._send(method, path, **kwargs)

        if response.status_code in AUTH_FAILURE_STATUSES:
            self._tokens.invalidate()
        if response.status_code == 404 and allow_404:
            return None
        if response.status_code >= 400:
            raise self._error_factory(operation, response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise self._error_factory(
                operation, response, message=f"{operation} returned a body that is not JSON",
            )

    async def request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        allow_404: bool = False,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Perform a JSON request and return the decoded body.

        Raises:
            CircuitBreakerOpenError: the backend failed too often recently
            ExternalServiceException: non-2xx answer, timeout or network error
        """
        if not self._breaker.can_execute():
            raise CircuitBreakerOpenError(self._service_name, self._breaker.get_retry_after())

        async def attempt() -> Any:
            return await self._attempt(
                method, path, operation=operation, allow_404=allow_404, json=json, params=params,
            )

        try:
            result = await retry_async(attempt, operation=operation, **retry_kwargs(settings))
        except httpx.TransportError as e:
            self._breaker.record_failure(e)
            raise ExternalServiceException(
                service_name=self._service_name,
                message=f"{operation} network error: {e}",
                details={"operation": operation, "network_error": True},
            ) from e
        except ExternalServiceException as e:
            # 4xx é erro do pedido, não do serviço
            if is_transient_http_error(e):
                self._breaker.record_failure(e)
            raise

        self._breaker.record_success()
        return result
