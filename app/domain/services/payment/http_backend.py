"""
Payment backend over HTTP: ``POST /api/cobrancas/boleto`` and
``POST /api/cobrancas/carne``, answering ``{success, message, data}``.
"""
from datetime import date
from typing import Any

from pydantic import ValidationError

from app.core.config import settings
from app.core.exceptions import PaymentBackendError
from app.core.logging import get_logger
from app.domain.services.partner.http import PartnerHttpClient
from app.domain.services.payment.base import InstallmentPlan, Invoice, PaymentBackend

logger = get_logger(__name__)


class HttpPaymentBackend(PaymentBackend):

    def __init__(
        self,
        client: PartnerHttpClient,
        *,
        fine_basis_points: int | None = None,
        interest_basis_points: int | None = None,
        thank_you_message: str | None = None,
    ):
        self._client = client
        self._fine = fine_basis_points if fine_basis_points is not None else settings.PAYMENT_FINE_BASIS_POINTS
        self._interest = (
            interest_basis_points if interest_basis_points is not None
            else settings.PAYMENT_INTEREST_BASIS_POINTS
        )
        self._message = thank_you_message or settings.PAYMENT_THANK_YOU_MESSAGE

    def _base_payload(self, customer_id: int | str, amount: float, description: str) -> dict[str, Any]:
        return {
            "alunoId": customer_id,
            "valor": round(amount, 2),
            "descricao": description,
            "message": self._message,
            # multa e juros em pontos-base (200 = 2%, 133 = 1,33% a.m.)
            "configurations": {"fine": self._fine, "interest": self._interest},
        }

    @staticmethod
    def _unwrap(operation: str, body: Any) -> dict[str, Any]:
        if not isinstance(body, dict) or not body.get("success"):
            message = body.get("message") if isinstance(body, dict) else None
            raise PaymentBackendError(
                message or f"{operation} was not successful",
                details={"operation": operation},
            )
        data = body.get("data")
        if not isinstance(data, dict):
            raise PaymentBackendError(f"{operation} returned no data", details={"operation": operation})
        return data

    async def generate_invoice(
        self,
        customer_id: int | str,
        amount: float,
        description: str,
        due_date: date | None = None,
    ) -> Invoice:
        payload = self._base_payload(customer_id, amount, description)
        if due_date is not None:
            payload["vencimento"] = due_date.isoformat()

        body = await self._client.request(
            "POST", "/api/cobrancas/boleto",
            json=payload,
            operation="cobrancas/boleto",
        )
        try:
            invoice = Invoice.model_validate(self._unwrap("cobrancas/boleto", body))
        except ValidationError as e:
            raise PaymentBackendError("cobrancas/boleto returned an unexpected payload", details={
                "operation": "cobrancas/boleto", "errors": e.errors(include_url=False)[:3],
            })

        logger.info(
            "Invoice generated",
            extra_data={"customer_id": customer_id, "charge_id": invoice.charge_id, "amount": payload["valor"]},
        )
        return invoice

    async def generate_installment_plan(
        self,
        customer_id: int | str,
        amount: float,
        description: str,
        installments: int,
        first_due_date: date,
    ) -> InstallmentPlan:
        payload = self._base_payload(customer_id, amount, description)
        payload["parcelas"] = installments
        payload["vencimentoPrimeiraParcela"] = first_due_date.isoformat()

        body = await self._client.request(
            "POST", "/api/cobrancas/carne",
            json=payload,
            operation="cobrancas/carne",
        )
        try:
            plan = InstallmentPlan.model_validate(self._unwrap("cobrancas/carne", body))
        except ValidationError as e:
            raise PaymentBackendError("cobrancas/carne returned an unexpected payload", details={
                "operation": "cobrancas/carne", "errors": e.errors(include_url=False)[:3],
            })

        logger.info(
            "Installment plan generated",
            extra_data={
                "customer_id": customer_id,
                "carne_id": plan.carne_id,
                "installments": installments,
                "amount": payload["valor"],
            },
        )
        return plan

