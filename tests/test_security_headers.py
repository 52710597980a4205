"""
SecurityHeadersMiddleware: anti mixed-content headers.

- production (DEBUG=False): CSP, HSTS and nosniff on every response
- development (DEBUG=True): no CSP/HSTS so plain local HTTP keeps working,
  nosniff is always applied
"""
import pytest

from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from app.core.middleware import SecurityHeadersMiddleware


def _hello(request):
    return PlainTextResponse("ok")


def _build_test_app(*, debug: bool) -> Starlette:
    test_app = Starlette(routes=[Route("/test", _hello)])
    test_app.add_middleware(SecurityHeadersMiddleware, debug=debug)
    return test_app


class TestSecurityHeadersProduction:
    """Headers with DEBUG=False, the production default"""

    async def test_csp_upgrade_insecure_requests(self, test_client) -> None:
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert "upgrade-insecure-requests" in response.headers.get("content-security-policy", "")

    async def test_hsts_header(self, test_client) -> None:
        hsts = (await test_client.get("/health")).headers.get("strict-transport-security", "")
        assert "max-age=" in hsts
        assert "includeSubDomains" in hsts

    async def test_headers_on_rejected_admin_call(self, test_client) -> None:
        response = await test_client.get("/api/admin/circuit-breakers")

        assert response.status_code == 401
        assert "upgrade-insecure-requests" in response.headers.get("content-security-policy", "")
        assert response.headers.get("x-content-type-options") == "nosniff"

    async def test_headers_on_webhook_error(self, test_client) -> None:
        response = await test_client.post("/api/webhook/whatsapp", json={"type": "ReceivedCallback"})

        assert response.status_code == 400
        assert response.headers.get("x-content-type-options") == "nosniff"


class TestSecurityHeadersDebugMode:

    @pytest.mark.unit
    def test_no_hsts_csp_in_debug(self) -> None:
        with TestClient(_build_test_app(debug=True)) as client:
            response = client.get("/test")
            assert response.status_code == 200
            assert "content-security-policy" not in response.headers
            assert "strict-transport-security" not in response.headers

    @pytest.mark.unit
    def test_nosniff_always_present_even_in_debug(self) -> None:
        with TestClient(_build_test_app(debug=True)) as client:
            assert client.get("/test").headers.get("x-content-type-options") == "nosniff"
