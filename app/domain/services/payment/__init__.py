"""
Payment backend layer: boleto/PIX invoices and carnê installment plans.
"""
from app.domain.services.payment.base import PaymentBackend, format_package_description
from app.domain.services.payment.factory import get_payment_backend

__all__ = [
    "PaymentBackend",
    "format_package_description",
    "get_payment_backend",
]
