"""
Z-API provider over a mocked transport
"""
import json
import unicodedata

import httpx
import pytest

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.core.exceptions import CircuitBreakerOpenError, MessagingGatewayError
from app.domain.services.zapi.zapi_provider import ZApiProvider, mask_secret

INSTANCE_PATH = "/instances/test-instance/token/test-token"
PHONE = "5571999990000"


class Gateway:

    def __init__(self, *statuses: int):
        self.statuses = list(statuses) or [200]
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if status >= 400:
            return httpx.Response(status, json={"error": "falhou"})
        return httpx.Response(status, json={"zaapId": "z-1", "messageId": "m-1"})

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make_provider(gateway: Gateway, threshold: int = 5, max_retries: int = 2) -> ZApiProvider:
    return ZApiProvider(
        CircuitBreaker("zapi-test", CircuitBreakerConfig(failure_threshold=threshold)),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(gateway.handler)),
        max_retries=max_retries,
        base_delay=0.0,
    )


class TestSending:

    @pytest.mark.unit
    async def test_send_text(self):
        gateway = Gateway()

        result = await make_provider(gateway).send_text(PHONE, "Olá")

        request = gateway.requests[0]
        assert request.method == "POST"
        assert request.url.host == "api.z-api.io"
        assert request.url.path == f"{INSTANCE_PATH}/send-text"
        assert gateway.body() == {"phone": PHONE, "message": "Olá", "messageType": "text"}
        assert result["messageId"] == "m-1"

    @pytest.mark.unit
    async def test_text_is_nfc_normalized(self):
        gateway = Gateway()
        decomposed = unicodedata.normalize("NFD", "Cobrança")

        await make_provider(gateway).send_text(PHONE, decomposed)

        assert gateway.body()["message"] == unicodedata.normalize("NFC", "Cobrança")

    @pytest.mark.unit
    async def test_option_list_payload(self):
        gateway = Gateway()
        option_list = {
            "title": "Menu",
            "buttonLabel": "Ver opções",
            "options": [{"id": "1", "title": "Assinar meu contrato"}],
        }

        await make_provider(gateway).send_option_list(PHONE, "Escolha", option_list)

        assert gateway.requests[0].url.path == f"{INSTANCE_PATH}/send-option-list"
        assert gateway.body() == {"phone": PHONE, "message": "Escolha", "optionList": option_list}

    @pytest.mark.unit
    async def test_buttons_payload(self):
        gateway = Gateway()

        await make_provider(gateway).send_buttons(PHONE, "Confirma?", [{"id": "sim", "label": "Sim"}])

        body = gateway.body()
        assert gateway.requests[0].url.path == f"{INSTANCE_PATH}/send-button"
        assert body["messageType"] == "button"
        assert body["instance"] == "test-instance"
        assert body["buttons"] == [{"id": "sim", "label": "Sim"}]

    @pytest.mark.unit
    async def test_list_payload(self):
        gateway = Gateway()
        sections = {"buttonText": "Itens", "sections": [{"title": "Pacote", "rows": [{"id": "1", "title": "Álbum"}]}]}

        await make_provider(gateway).send_list(PHONE, "Escolha os itens", sections)

        assert gateway.requests[0].url.path == f"{INSTANCE_PATH}/send-list"
        assert gateway.body()["list"] == sections

    @pytest.mark.unit
    async def test_instance_status_is_get(self):
        gateway = Gateway()

        await make_provider(gateway).instance_status()

        assert gateway.requests[0].method == "GET"
        assert gateway.requests[0].url.path == f"{INSTANCE_PATH}/instance/status"

    @pytest.mark.unit
    async def test_default_client_sends_client_token(self):
        provider = ZApiProvider(CircuitBreaker("zapi-test"))
        try:
            assert provider._http.headers["Client-Token"] == "test-client-token"
        finally:
            await provider.aclose()


class TestFailures:

    @pytest.mark.unit
    async def test_transient_status_retried(self):
        gateway = Gateway(503, 502, 200)

        await make_provider(gateway).send_text(PHONE, "oi")

        assert len(gateway.requests) == 3

    @pytest.mark.unit
    async def test_retries_exhausted(self):
        gateway = Gateway(500)

        with pytest.raises(MessagingGatewayError) as exc_info:
            await make_provider(gateway, max_retries=1).send_text(PHONE, "oi")

        assert len(gateway.requests) == 2
        assert exc_info.value.upstream_status == 500

    @pytest.mark.unit
    async def test_client_error_not_retried(self):
        gateway = Gateway(400)

        with pytest.raises(MessagingGatewayError) as exc_info:
            await make_provider(gateway).send_text(PHONE, "oi")

        assert len(gateway.requests) == 1
        assert exc_info.value.upstream_status == 400
        assert "falhou" in exc_info.value.details["response_text"]

    @pytest.mark.unit
    async def test_network_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = ZApiProvider(
            CircuitBreaker("zapi-test"),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
            max_retries=1,
            base_delay=0.0,
        )

        with pytest.raises(MessagingGatewayError) as exc_info:
            await provider.send_text(PHONE, "oi")

        assert exc_info.value.details["network_error"] is True

    @pytest.mark.unit
    async def test_breaker_opens(self):
        gateway = Gateway(500)
        provider = make_provider(gateway, threshold=2, max_retries=0)

        for _ in range(2):
            with pytest.raises(MessagingGatewayError):
                await provider.send_text(PHONE, "oi")

        with pytest.raises(CircuitBreakerOpenError):
            await provider.send_text(PHONE, "oi")

        assert len(gateway.requests) == 2


@pytest.mark.unit
def test_mask_secret():
    assert mask_secret("abcdefghijkl") == "abcdefgh..."
    assert mask_secret("") == "undefined"
