"""
Session model - per-phone conversation state and the form data collected so far.

``SessionData`` replaces a free-form dict: the two sub-records the flow fills
in (``clienteData`` and ``pacoteData``) are typed, unknown keys are kept as
extras, and merging is explicit. Field aliases match the JSON stored in the
durable ``context`` column and in the cache.
"""
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def deep_merge(base: dict[str, Any], partial: dict[str, Any]) -> dict[str, Any]:
    """Recursive merge; nested dicts are merged, every other value from ``partial`` wins"""
    merged = deepcopy(base)
    for key, value in partial.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def shallow_merge(base: dict[str, Any], partial: dict[str, Any]) -> dict[str, Any]:
    """Top-level merge; a key present in ``partial`` replaces the whole value"""
    merged = dict(base)
    merged.update(partial)
    return merged


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ClienteData(_Record):
    """Customer fields collected during the contract flow"""

    cpf: str | None = None
    nomeCompleto: str | None = None
    email: str | None = None
    cep: str | None = None
    endereco: str | None = None
    bairro: str | None = None
    cidade: str | None = None
    uf: str | None = None
    turmaId: str | int | None = None
    # id do cliente no partner backend, preenchido após o cadastro
    id: str | int | None = None


class PacoteData(_Record):
    """Package selection and payment choices"""

    configuracaoTurmaId: str | int | None = None
    itensSelecionados: list[dict[str, Any]] = Field(default_factory=list)
    valorTotal: float | None = None
    metodoPagamento: str | None = None
    parcelas: int | None = None
    # campos do fluxo antigo de álbum, mantidos para sessões já gravadas
    albumSize: str | None = None
    photoQuantity: int | None = None
    extras: list[Any] = Field(default_factory=list)
    customItems: list[Any] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        for legacy in ("extras", "customItems"):
            if not data.get(legacy):
                data.pop(legacy, None)
        return data


class SessionData(_Record):
    cliente: ClienteData = Field(default_factory=ClienteData, alias="clienteData")
    pacote: PacoteData = Field(default_factory=PacoteData, alias="pacoteData")
    tentativas_turma: int = Field(default=0, alias="tentativasTurma")

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "SessionData":
        return cls.model_validate(raw or {})

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        data["clienteData"] = self.cliente.to_dict()
        data["pacoteData"] = self.pacote.to_dict()
        return data

    def merge(self, partial: dict[str, Any]) -> "SessionData":
        """
        Shallow merge of a partial update.

        Keys absent from ``partial`` are kept, so a step that only writes
        ``tentativasTurma`` never drops ``clienteData``. A sub-record key in
        ``partial`` replaces that sub-record, which is why handlers build
        updates with ``cliente_update`` / ``pacote_update``.
        """
        return SessionData.from_dict(shallow_merge(self.to_dict(), partial))

    def cliente_update(self, **fields: Any) -> dict[str, Any]:
        """Partial update carrying the whole clienteData record plus ``fields``"""
        return {"clienteData": {**self.cliente.to_dict(), **fields}}

    def pacote_update(self, **fields: Any) -> dict[str, Any]:
        return {"pacoteData": {**self.pacote.to_dict(), **fields}}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """Conversation state for one phone, as seen by the engine"""

    phone: str
    current_step: str = "welcome"
    last_message: str | None = None
    data: SessionData = Field(default_factory=SessionData)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def new(cls, phone: str) -> "Session":
        return cls(phone=phone)

    def to_cache(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_cache(cls, raw: str) -> "Session":
        return cls.model_validate_json(raw)
