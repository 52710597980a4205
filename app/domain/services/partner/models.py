"""
Partner backend DTOs.

Field names follow the backend's JSON (Portuguese, camelCase); unknown fields
are kept so the admin views can show the raw record.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _PartnerModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Customer(_PartnerModel):
    """Aluno"""

    id: int | str
    nomeCompleto: str = ""
    cpf: str | None = None
    turmaId: int | str | None = None
    email: str | None = None
    telefone: str | None = None


class PricingConfig(_PartnerModel):
    """Configuração da turma: limites de parcelamento"""

    id: int | str
    turmaId: int | str | None = None
    pixMaxParcelas: int | None = None
    carneMaxParcelas: int | None = None

    @property
    def max_installments(self) -> int:
        return self.carneMaxParcelas or 1


class Cohort(_PartnerModel):
    """Turma"""

    id: int | str
    nomeTurma: str = ""
    universidade: str = ""
    curso: str = ""
    codigo: str | None = None
    configuracao: PricingConfig | None = None


class CatalogItem(_PartnerModel):
    id: int | str
    nome: str
    valor: float | None = None
    configuracaoTurmaId: int | str | None = None

    def price_label(self) -> str:
        return f"R$ {self.valor:.2f}" if self.valor is not None else "Consultar"


class NewCustomer(BaseModel):
    """Payload for ``POST /api/alunos``"""

    cpf: str
    telefone: str
    cep: str
    rua: str
    numero: str
    bairro: str
    cidade: str
    uf: str
    email: str
    nomeCompleto: str
    turmaId: int | str


# status que contam como cobrança em aberto no resumo financeiro
PENDING_CHARGE_STATUSES = frozenset({
    "new", "waiting", "pending", "unpaid", "link",
    "pendente", "aguardando", "em_aberto", "vencido",
})


class Charge(_PartnerModel):
    """Cobrança as listed by ``GET /api/cobrancas``"""

    id: int | str | None = None
    tipo: str | None = None
    status: str | None = None
    valor: float | None = None
    vencimento: str | None = None
    carneId: int | str | None = None

    @property
    def is_installment(self) -> bool:
        return (self.tipo or "").lower() == "carne" or self.carneId is not None

    @property
    def is_pending(self) -> bool:
        return (self.status or "").lower() in PENDING_CHARGE_STATUSES


class ChargeSummary(BaseModel):
    pending_invoices: int = 0
    pending_installment_plans: int = 0

    @classmethod
    def from_charges(cls, charges: list[Charge]) -> "ChargeSummary":
        pending = [c for c in charges if c.is_pending]
        return cls(
            pending_invoices=sum(1 for c in pending if not c.is_installment),
            pending_installment_plans=sum(1 for c in pending if c.is_installment),
        )


def unwrap_list(payload: Any, *keys: str) -> list[Any]:
    """
    The backend answers lists in several envelopes: a bare list,
    ``{"data": [...]}`` or ``{"<key>": [...]}``.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", *keys):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


class LoginResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    accessToken: str | None = Field(default=None)
    message: str | None = None
