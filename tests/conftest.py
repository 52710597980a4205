"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, SQLite in memory)
- In-memory Redis
- Fake collaborators: partner gateway, payment backend, Z-API provider
- The wired conversation service and an HTTP test client
"""
# variáveis obrigatórias antes de importar app (o validador exige as credenciais Z-API com DEBUG=False)
import os
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ZAPI_INSTANCE", "test-instance")
os.environ.setdefault("ZAPI_TOKEN", "test-token")
os.environ.setdefault("ZAPI_CLIENT_TOKEN", "test-client-token")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("WEBHOOK_RATE_LIMIT_MAX_REQUESTS", "10000")

from datetime import date
from typing import Any, AsyncGenerator
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.dependencies import services as service_deps
from app.core.exceptions import MessagingGatewayError, PartnerApiError, PaymentBackendError
from app.db.database import Base
from app.domain.conversation_service import ConversationService
from app.domain.services.dispatcher import OutboundDispatcher
from app.domain.services.message_log_service import MessageLogService
from app.domain.services.partner.base import ExternalDataGateway
from app.domain.services.partner.models import (
    CatalogItem,
    Charge,
    Cohort,
    Customer,
    NewCustomer,
    PricingConfig,
)
from app.domain.services.payment.base import Installment, InstallmentPlan, Invoice, PaymentBackend
from app.domain.services.zapi.base_provider import BaseMessagingProvider
from app.domain.session_store import RedisSessionCache, SessionStore, SqlSessionRepository
from app.domain.webhook_guard import WebhookGuard
from app.main import app
from app.state_machine.engine import ConversationEngine


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

VALID_CPF = "52998224725"
CLASS_CODE = "FOTO2025"
TODAY = date(2025, 3, 1)


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Redis
# ============================================================================

class FakeRedis:
    """In-memory stand-in for Redis with TTL bookkeeping."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        """SET with NX (only if absent) and EX (expiry in seconds)"""
        if nx and key in self._store:
            return None
        self._store[key] = value
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = value
        self._ttls[key] = ttl

    async def exists(self, key: str) -> int:
        return int(key in self._store)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
            self._ttls.pop(key, None)
        return removed

    async def eval(self, script: str, numkeys: int, *keys_and_args: str) -> int:
        """Only the compare-and-delete used to release phone locks"""
        key, token = keys_and_args[0], keys_and_args[numkeys]
        if self._store.get(key) != token:
            return 0
        return await self.delete(key)

    def expire_now(self, key: str) -> None:
        """Simulate the TTL running out"""
        self._store.pop(key, None)
        self._ttls.pop(key, None)

    async def info(self) -> dict[str, Any]:
        return {"redis_version": "7.2.0-fake", "connected_clients": 1, "used_memory_human": "1M"}

    def ttl_of(self, key: str) -> int | None:
        return self._ttls.get(key)

    async def aclose(self) -> None:
        self._store.clear()
        self._ttls.clear()


# modules that bind get_redis at import time
_REDIS_CONSUMERS = (
    "app.core.redis_client",
    "app.domain.session_store",
    "app.domain.webhook_guard",
    "app.domain.services.due_date_notifier",
    "app.domain.services.health_service",
    "app.api.routes.admin",
)


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace get_redis with a FakeRedis in every consumer."""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    patches = [patch(f"{module}.get_redis", _get_fake_redis) for module in _REDIS_CONSUMERS]
    for p in patches:
        p.start()
    yield _fake
    for p in reversed(patches):
        p.stop()


# ============================================================================
# Fake collaborators
# ============================================================================

class FakeGateway(ExternalDataGateway):
    """Partner backend with canned data; ``failing`` names operations that raise 503"""

    def __init__(self) -> None:
        self.customers: dict[str, Customer] = {}
        self.cohorts: dict[str, Cohort] = {
            CLASS_CODE: Cohort(id=10, nomeTurma="Formandos 2025", universidade="UFBA", curso="Medicina", codigo=CLASS_CODE),
        }
        self.pricing: dict[Any, PricingConfig] = {
            10: PricingConfig(id=77, turmaId=10, pixMaxParcelas=1, carneMaxParcelas=10),
        }
        self.items: dict[Any, list[CatalogItem]] = {
            10: [
                CatalogItem(id=1, nome="Álbum 30x30", valor=10.0, configuracaoTurmaId=77),
                CatalogItem(id=2, nome="Ensaio externo", valor=30.0, configuracaoTurmaId=77),
                CatalogItem(id=3, nome="Fotos extras", valor=None, configuracaoTurmaId=77),
            ],
        }
        self.charges: dict[Any, list[Charge]] = {}
        self.created: list[NewCustomer] = []
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def _track(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise PartnerApiError(f"{operation} failed", details={"status_code": 503})

    async def find_customer_by_document(self, cpf: str) -> Customer | None:
        self._track("find_customer_by_document")
        return self.customers.get(cpf)

    async def find_cohort_by_code(self, code: str) -> Cohort | None:
        self._track("find_cohort_by_code")
        return self.cohorts.get(code)

    async def get_cohort_pricing(self, cohort_id: int | str) -> PricingConfig | None:
        self._track("get_cohort_pricing")
        return self.pricing.get(cohort_id)

    async def get_custom_items(self, cohort_id: int | str) -> list[CatalogItem]:
        self._track("get_custom_items")
        return list(self.items.get(cohort_id, []))

    async def create_customer(self, customer: NewCustomer) -> Customer:
        self._track("create_customer")
        self.created.append(customer)
        created = Customer(id=500 + len(self.created), **customer.model_dump())
        self.customers[customer.cpf] = created
        return created

    async def list_customer_charges(self, customer_id: int | str) -> list[Charge]:
        self._track("list_customer_charges")
        return list(self.charges.get(customer_id, []))

    async def health(self) -> bool:
        return "health" not in self.failing


class FakePayments(PaymentBackend):

    def __init__(self) -> None:
        self.invoices: list[dict[str, Any]] = []
        self.plans: list[dict[str, Any]] = []
        self.fail = False

    async def generate_invoice(self, customer_id, amount, description, due_date=None) -> Invoice:
        if self.fail:
            raise PaymentBackendError("boleto failed", details={"status_code": 422})
        self.invoices.append({"customer_id": customer_id, "amount": amount, "description": description})
        return Invoice(chargeId="c-1", link="https://pay.example/c-1", barcode="23790000", pixQrcode="000201PIX")

    async def generate_installment_plan(self, customer_id, amount, description, installments, first_due_date) -> InstallmentPlan:
        if self.fail:
            raise PaymentBackendError("carne failed", details={"status_code": 422})
        self.plans.append({
            "customer_id": customer_id,
            "amount": amount,
            "description": description,
            "installments": installments,
            "first_due_date": first_due_date,
        })
        return InstallmentPlan(
            carneId="k-1",
            parcelas=[
                Installment(parcel=n, chargeId=f"k-1-{n}", link=f"https://pay.example/k-1/{n}", valor=round(amount / installments, 2))
                for n in range(1, installments + 1)
            ],
        )


class FakeProvider(BaseMessagingProvider):
    """Records every outbound call as (kind, phone, message, payload)"""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str, Any]] = []
        self.fail = False
        self.connected = True

    def _record(self, kind: str, phone: str, message: str, payload: Any = None) -> dict[str, Any]:
        if self.fail:
            raise MessagingGatewayError("send failed", details={"status_code": 500})
        self.sent.append((kind, phone, message, payload))
        return {"messageId": f"out-{len(self.sent)}"}

    async def send_text(self, phone: str, message: str) -> dict[str, Any]:
        return self._record("text", phone, message)

    async def send_buttons(self, phone: str, message: str, buttons: list[dict[str, str]]) -> dict[str, Any]:
        return self._record("buttons", phone, message, buttons)

    async def send_list(self, phone: str, message: str, list_payload: dict[str, Any]) -> dict[str, Any]:
        return self._record("list", phone, message, list_payload)

    async def send_option_list(self, phone: str, message: str, option_list: dict[str, Any]) -> dict[str, Any]:
        return self._record("option_list", phone, message, option_list)

    async def instance_status(self) -> dict[str, Any]:
        return {"connected": self.connected, "session": True}

    @property
    def provider_name(self) -> str:
        return "fake"


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_payments() -> FakePayments:
    return FakePayments()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def session_store(session_factory) -> SessionStore:
    return SessionStore(SqlSessionRepository(session_factory), RedisSessionCache())


@pytest.fixture
def message_log(session_factory) -> MessageLogService:
    return MessageLogService(session_factory)


@pytest.fixture
def conversation_engine(fake_gateway, fake_payments) -> ConversationEngine:
    return ConversationEngine(fake_gateway, fake_payments, today=lambda: TODAY)


@pytest.fixture
def dispatcher(fake_provider, message_log) -> OutboundDispatcher:
    return OutboundDispatcher(fake_provider, message_log)


@pytest.fixture
def conversation_service(session_store, conversation_engine, dispatcher, message_log) -> ConversationService:
    return ConversationService(session_store, conversation_engine, dispatcher, WebhookGuard(), message_log)


@pytest.fixture(scope="function")
async def test_client(session_store, message_log, fake_provider, conversation_engine):
    """HTTP client with the fakes wired through dependency overrides"""
    from httpx import AsyncClient, ASGITransport

    app.dependency_overrides[service_deps.get_session_store] = lambda: session_store
    app.dependency_overrides[service_deps.get_message_log] = lambda: message_log
    app.dependency_overrides[service_deps.get_provider] = lambda: fake_provider
    app.dependency_overrides[service_deps.get_conversation_engine] = lambda: conversation_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-API-Key": os.environ["ADMIN_API_KEY"]}


def inbound(phone: str = "5571999990000", text: str = "oi", message_id: str | None = None, **extra: Any) -> dict[str, Any]:
    """Z-API ReceivedCallback payload"""
    payload: dict[str, Any] = {
        "phone": phone,
        "type": "ReceivedCallback",
        "fromMe": False,
        "text": {"message": text},
    }
    if message_id:
        payload["messageId"] = message_id
    payload.update(extra)
    return payload


# ============================================================================
# Circuit Breaker / singleton reset
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from app.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


@pytest.fixture(autouse=True)
def reset_client_singletons():
    from app.domain.services.partner.factory import reset_partner_clients
    from app.domain.services.payment.factory import reset_payment_backend
    from app.domain.services.zapi.provider_factory import reset_providers

    yield
    reset_partner_clients()
    reset_payment_backend()
    reset_providers()
