"""
retry_async and the transient-error classifier
"""
import httpx
import pytest

from app.core.exceptions import (
    CircuitBreakerOpenError,
    PartnerApiError,
    PaymentBackendError,
    ServiceTimeoutError,
)
from app.core.retry import is_transient_http_error, retry_async


def status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "http://partner.test/api/alunos")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(code, request=request))


class Flaky:
    """Raises the queued errors, then returns ``"ok"``"""

    def __init__(self, *errors: Exception):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestClassifier:

    @pytest.mark.unit
    @pytest.mark.parametrize("exc,expected", [
        (httpx.ConnectTimeout("timeout"), True),
        (httpx.ConnectError("refused"), True),
        (ServiceTimeoutError("partner_api", 30.0), True),
        (status_error(502), True),
        (status_error(404), False),
        (PartnerApiError("x", details={"status_code": 503}), True),
        (PartnerApiError("x", details={"status_code": 422}), False),
        (PaymentBackendError("x"), False),
        (CircuitBreakerOpenError("partner_api", 10.0), False),
        (ValueError("bad"), False),
    ])
    def test_is_transient(self, exc: Exception, expected: bool):
        assert is_transient_http_error(exc) is expected


class TestRetryAsync:

    @pytest.mark.unit
    async def test_success_first_try(self):
        func = Flaky()

        assert await retry_async(func, base_delay=0) == "ok"
        assert func.calls == 1

    @pytest.mark.unit
    async def test_transient_then_success(self):
        func = Flaky(httpx.ConnectError("refused"), status_error(503))

        assert await retry_async(func, max_retries=2, base_delay=0) == "ok"
        assert func.calls == 3

    @pytest.mark.unit
    async def test_budget_exhausted_reraises_last(self):
        func = Flaky(httpx.ConnectError("1"), httpx.ConnectError("2"), httpx.ConnectError("3"))

        with pytest.raises(httpx.ConnectError, match="2"):
            await retry_async(func, max_retries=1, base_delay=0)
        assert func.calls == 2

    @pytest.mark.unit
    async def test_client_error_not_retried(self):
        func = Flaky(PartnerApiError("cpf inválido", details={"status_code": 400}))

        with pytest.raises(PartnerApiError):
            await retry_async(func, max_retries=3, base_delay=0)
        assert func.calls == 1

    @pytest.mark.unit
    async def test_custom_classifier(self):
        func = Flaky(ValueError("again"))

        assert await retry_async(func, base_delay=0, is_transient=lambda e: isinstance(e, ValueError)) == "ok"
