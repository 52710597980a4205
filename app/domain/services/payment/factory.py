"""
Payment backend factory; reuses the partner HTTP client and token.
"""
from app.core.circuit_breaker import get_partner_circuit_breaker
from app.core.config import settings
from app.core.exceptions import PaymentBackendError
from app.domain.services.partner.factory import get_partner_http_client, get_token_provider
from app.domain.services.partner.http import PartnerHttpClient
from app.domain.services.payment.base import PaymentBackend
from app.domain.services.payment.http_backend import HttpPaymentBackend

_backend: PaymentBackend | None = None


def get_payment_backend() -> PaymentBackend:
    global _backend
    if _backend is None:
        client = PartnerHttpClient(
            get_partner_http_client(),
            get_token_provider(),
            get_partner_circuit_breaker(),
            base_url=settings.payment_base_url,
            service_name="payment_backend",
            error_factory=PaymentBackendError.from_response,
        )
        _backend = HttpPaymentBackend(client)
    return _backend


def reset_payment_backend() -> None:
    global _backend
    _backend = None
