"""
Partner backend gateway (alunos, turmas, itens, cobranças) over HTTP.
"""
from typing import Any

from pydantic import ValidationError

from app.core.exceptions import ExternalServiceException, PartnerApiError
from app.core.logging import get_logger
from app.core.validation import DocumentValidator
from app.domain.services.partner.base import ExternalDataGateway
from app.domain.services.partner.http import PartnerHttpClient
from app.domain.services.partner.models import (
    CatalogItem,
    Charge,
    Cohort,
    Customer,
    NewCustomer,
    PricingConfig,
    unwrap_list,
)

logger = get_logger(__name__)


class PartnerApiGateway(ExternalDataGateway):

    def __init__(self, client: PartnerHttpClient):
        self._client = client

    @staticmethod
    def _first(payload: Any) -> dict[str, Any] | None:
        rows = unwrap_list(payload)
        return rows[0] if rows and isinstance(rows[0], dict) else None

    @staticmethod
    def _parse(model: type, raw: dict[str, Any], operation: str):
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise PartnerApiError(
                f"{operation} returned an unexpected payload",
                details={"operation": operation, "errors": e.errors(include_url=False)[:3]},
            )

    async def find_customer_by_document(self, cpf: str) -> Customer | None:
        payload = await self._client.request(
            "GET", "/api/alunos",
            params={"search": cpf},
            operation="alunos/search",
            allow_404=True,
        )
        row = self._first(payload)
        if row is None:
            logger.info("Customer not found", extra_data={"cpf": DocumentValidator.mask(cpf)})
            return None
        return self._parse(Customer, row, "alunos/search")

    async def _search_cohort(self, term: str) -> Cohort | None:
        payload = await self._client.request(
            "GET", "/api/turmas",
            params={"search": term},
            operation="turmas/search",
            allow_404=True,
        )
        row = self._first(payload)
        return self._parse(Cohort, row, "turmas/search") if row else None

    async def find_cohort_by_code(self, code: str) -> Cohort | None:
        cohort = await self._search_cohort(code)
        logger.info(
            "Cohort lookup",
            extra_data={"code": code, "found": cohort is not None},
        )
        return cohort

    async def get_cohort_pricing(self, cohort_id: int | str) -> PricingConfig | None:
        cohort = await self._search_cohort(str(cohort_id))
        if cohort is None or cohort.configuracao is None:
            logger.warning("Cohort pricing not found", extra_data={"cohort_id": cohort_id})
            return None
        return cohort.configuracao

    async def get_custom_items(self, cohort_id: int | str) -> list[CatalogItem]:
        payload = await self._client.request(
            "GET", f"/api/turmas/{cohort_id}/itens-customizados",
            operation="turmas/itens-customizados",
            allow_404=True,
        )
        items = [
            self._parse(CatalogItem, row, "turmas/itens-customizados")
            for row in unwrap_list(payload, "itens")
            if isinstance(row, dict)
        ]
        logger.info(
            "Catalog loaded",
            extra_data={"cohort_id": cohort_id, "items": len(items)},
        )
        return items

    async def create_customer(self, customer: NewCustomer) -> Customer:
        payload = await self._client.request(
            "POST", "/api/alunos",
            json=customer.model_dump(),
            operation="alunos/create",
        )
        # algumas versões do backend envelopam em {"data": {...}}
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict) or payload.get("id") is None:
            raise PartnerApiError(
                "alunos/create returned no id",
                details={"operation": "alunos/create"},
            )
        created = self._parse(Customer, payload, "alunos/create")
        logger.info(
            "Customer created",
            extra_data={"customer_id": created.id, "cpf": DocumentValidator.mask(customer.cpf)},
        )
        return created

    async def list_customer_charges(self, customer_id: int | str) -> list[Charge]:
        payload = await self._client.request(
            "GET", "/api/cobrancas",
            params={"alunoId": customer_id},
            operation="cobrancas/list",
            allow_404=True,
        )
        if isinstance(payload, dict) and not unwrap_list(payload, "cobrancas"):
            # objeto único em vez de lista
            rows = [payload] if payload.get("id") is not None else []
        else:
            rows = unwrap_list(payload, "cobrancas")
        return [self._parse(Charge, row, "cobrancas/list") for row in rows if isinstance(row, dict)]

    async def health(self) -> bool:
        try:
            await self._client.request("GET", "/api/health", operation="health", allow_404=True)
        except ExternalServiceException:
            return False
        return True
