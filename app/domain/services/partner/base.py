"""
External data gateway interface.

The conversation engine depends only on this interface. Lookups return
``None`` (or an empty list) when the record does not exist and raise an
``ExternalServiceException`` subclass when the backend cannot answer.
"""
from abc import ABC, abstractmethod

from app.domain.services.partner.models import (
    CatalogItem,
    Charge,
    Cohort,
    Customer,
    NewCustomer,
    PricingConfig,
)


class ExternalDataGateway(ABC):

    @abstractmethod
    async def find_customer_by_document(self, cpf: str) -> Customer | None:
        """Customer by CPF (11 digits, no punctuation)"""

    @abstractmethod
    async def find_cohort_by_code(self, code: str) -> Cohort | None:
        """Cohort by the class code the customer types in"""

    @abstractmethod
    async def get_cohort_pricing(self, cohort_id: int | str) -> PricingConfig | None:
        ...

    @abstractmethod
    async def get_custom_items(self, cohort_id: int | str) -> list[CatalogItem]:
        """Priced catalog for a cohort, in display order"""

    @abstractmethod
    async def create_customer(self, customer: NewCustomer) -> Customer:
        ...

    @abstractmethod
    async def list_customer_charges(self, customer_id: int | str) -> list[Charge]:
        ...

    @abstractmethod
    async def health(self) -> bool:
        ...

    async def aclose(self) -> None:
        return None
