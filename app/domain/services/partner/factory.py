"""
Partner Factory - builds the shared partner HTTP stack.

The partner gateway and the payment backend share one ``httpx.AsyncClient``
and one ``TokenProvider`` (same backend, same credentials). Module-level
singletons, created on first use and closed on application shutdown.
"""
import httpx

from app.core.circuit_breaker import get_partner_circuit_breaker
from app.core.config import settings
from app.core.logging import get_logger
from app.domain.services.partner.base import ExternalDataGateway
from app.domain.services.partner.client import PartnerApiGateway
from app.domain.services.partner.http import PartnerHttpClient
from app.domain.services.partner.token_provider import TokenProvider

logger = get_logger(__name__)

_http_client: httpx.AsyncClient | None = None
_token_provider: TokenProvider | None = None
_gateway: ExternalDataGateway | None = None


def get_partner_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    return _http_client


def get_token_provider() -> TokenProvider:
    global _token_provider
    if _token_provider is None:
        _token_provider = TokenProvider(get_partner_http_client())
    return _token_provider


def get_partner_gateway() -> ExternalDataGateway:
    global _gateway
    if _gateway is None:
        client = PartnerHttpClient(
            get_partner_http_client(),
            get_token_provider(),
            get_partner_circuit_breaker(),
            base_url=settings.PARTNER_API_BASE_URL,
        )
        _gateway = PartnerApiGateway(client)
        logger.info(
            "Partner gateway initialized",
            extra_data={
                "base_url": settings.PARTNER_API_BASE_URL,
                "static_token": get_token_provider().uses_static_token,
                "login_credentials": get_token_provider().has_credentials,
            },
        )
    return _gateway


async def close_partner_clients() -> None:
    """Stop the token refresh loop and close the HTTP pool"""
    global _http_client, _token_provider, _gateway
    if _token_provider is not None:
        await _token_provider.stop()
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = None
    _token_provider = None
    _gateway = None


def reset_partner_clients() -> None:
    """Forget the singletons without closing them (tests only)"""
    global _http_client, _token_provider, _gateway
    _http_client = None
    _token_provider = None
    _gateway = None
