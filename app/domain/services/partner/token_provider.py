"""
Bearer token for the partner backend.

A static ``PARTNER_API_TOKEN`` always wins. Otherwise the token comes from
``POST /api/auth/login`` with the configured credentials: fetched on first
use, dropped after a 401/403, and, when a refresh interval longer than five
minutes is configured, renewed in the background five minutes before it
expires.
"""
import asyncio

import httpx

from app.core.config import settings
from app.core.exceptions import PartnerApiError, PartnerAuthError
from app.core.logging import get_logger
from app.core.retry import retry_async, retry_kwargs
from app.domain.services.partner.models import LoginResponse

logger = get_logger(__name__)

REFRESH_MARGIN_SECONDS = 5 * 60


class TokenProvider:

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str | None = None,
        static_token: str | None = None,
        username: str | None = None,
        password: str | None = None,
        refresh_interval_seconds: int | None = None,
    ):
        self._http = http_client
        self._base_url = base_url if base_url is not None else settings.PARTNER_API_BASE_URL
        self._static_token = static_token if static_token is not None else settings.PARTNER_API_TOKEN
        self._username = username if username is not None else settings.PARTNER_USERNAME
        self._password = password if password is not None else settings.PARTNER_PASSWORD
        self._interval = (
            refresh_interval_seconds
            if refresh_interval_seconds is not None
            else settings.PARTNER_TOKEN_REFRESH_INTERVAL_SECONDS
        )
        self._token: str | None = self._static_token or None
        self._refresh_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self._username and self._password)

    @property
    def uses_static_token(self) -> bool:
        return bool(self._static_token)

    @property
    def scheduled_refresh_seconds(self) -> int | None:
        """Delay between background refreshes, None when disabled"""
        if self.has_credentials and self._interval > REFRESH_MARGIN_SECONDS:
            return self._interval - REFRESH_MARGIN_SECONDS
        return None

    async def get_token(self) -> str | None:
        if self._token:
            return self._token
        if self.has_credentials:
            await self.refresh()
        return self._token

    def invalidate(self) -> None:
        """Forget a token the backend rejected; the static token is never dropped"""
        if not self.uses_static_token:
            self._token = None

    async def refresh(self) -> str | None:
        if not self.has_credentials:
            logger.warning("Partner token refresh requested without credentials")
            return self._token

        async with self._refresh_lock:
            loop = asyncio.get_running_loop()
            started = loop.time()
            token = await retry_async(
                self._login,
                operation="partner_login",
                **retry_kwargs(settings),
            )
            self._token = token
            logger.info(
                "Partner token refreshed",
                extra_data={"elapsed_seconds": round(loop.time() - started, 3)},
            )
            return token

    async def _login(self) -> str:
        response = await self._http.post(
            f"{self._base_url}/api/auth/login",
            json={"username": self._username, "password": self._password},
        )
        if response.status_code >= 400:
            raise PartnerApiError.from_response("auth/login", response)

        try:
            body = LoginResponse.model_validate(response.json())
        except ValueError:
            raise PartnerApiError.from_response(
                "auth/login", response, message="auth/login returned an unreadable body",
            )
        if not body.accessToken:
            raise PartnerAuthError(
                f"login response without accessToken: {body.message or 'no message'}",
                details={"operation": "auth/login", "status_code": response.status_code},
            )
        return body.accessToken

    # ── renovação agendada ──

    def start(self) -> None:
        delay = self.scheduled_refresh_seconds
        if delay is None or self._refresh_task is not None:
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(delay))
        logger.info("Partner token refresh scheduled", extra_data={"every_seconds": delay})

    async def _refresh_loop(self, delay: int) -> None:
        while True:
            await asyncio.sleep(delay)
            try:
                await self.refresh()
            except (PartnerApiError, httpx.HTTPError) as e:
                # mantém o token atual; a próxima chamada com 401 força novo login
                logger.error(
                    "Scheduled partner token refresh failed",
                    extra_data={"error": str(e), "status_code": getattr(e, "upstream_status", None)},
                )

    async def stop(self) -> None:
        if self._refresh_task is None:
            return
        self._refresh_task.cancel()
        try:
            await self._refresh_task
        except asyncio.CancelledError:
            pass
        self._refresh_task = None
