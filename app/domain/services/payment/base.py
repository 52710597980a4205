"""
Payment backend interface and response models (boleto/PIX and carnê).
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _PaymentModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Invoice(_PaymentModel):
    """Bolepix: a boleto with an embedded PIX charge"""

    charge_id: int | str | None = Field(default=None, alias="chargeId")
    link: str = ""
    pdf: str | None = None
    barcode: str = ""
    pix_qrcode: str | None = Field(default=None, alias="pixQrcode")


class Installment(_PaymentModel):
    parcel: int
    charge_id: int | str | None = Field(default=None, alias="chargeId")
    link: str = ""
    pdf: str | None = None
    barcode: str = ""
    valor: float | None = None
    vencimento: str | None = None


class InstallmentPlan(_PaymentModel):
    carne_id: int | str | None = Field(default=None, alias="carneId")
    parcelas: list[Installment] = Field(default_factory=list)

    @property
    def first(self) -> Installment | None:
        return self.parcelas[0] if self.parcelas else None


def format_package_description(items: list[dict[str, Any]]) -> str:
    """1 item: its name; 2: ``a + b``; more: ``N itens personalizados``"""
    names = [str(item.get("nome", "")) for item in items]
    if len(names) == 1:
        return names[0]
    if len(names) == 2:
        return f"{names[0]} + {names[1]}"
    return f"{len(names)} itens personalizados"


class PaymentBackend(ABC):

    @abstractmethod
    async def generate_invoice(
        self,
        customer_id: int | str,
        amount: float,
        description: str,
        due_date: date | None = None,
    ) -> Invoice:
        """Raises PaymentBackendError when the charge cannot be generated"""

    @abstractmethod
    async def generate_installment_plan(
        self,
        customer_id: int | str,
        amount: float,
        description: str,
        installments: int,
        first_due_date: date,
    ) -> InstallmentPlan:
        """Raises PaymentBackendError when the plan cannot be generated"""
