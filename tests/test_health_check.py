"""
Liveness and readiness endpoints
"""
from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.exceptions import MessagingGatewayError
from tests.conftest import FakeProvider


@pytest.fixture
def zapi(fake_provider: FakeProvider):
    with patch("app.domain.services.health_service.get_messaging_provider", lambda: fake_provider):
        yield fake_provider


class TestLiveness:

    @pytest.mark.integration
    async def test_health_is_static(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestReadiness:

    @pytest.mark.integration
    async def test_all_dependencies_ok(self, test_client, zapi):
        response = await test_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "db": "ok", "redis": "ok", "zapi": "ok"}

    @pytest.mark.integration
    async def test_disconnected_instance_degrades(self, test_client, zapi):
        zapi.connected = False

        response = await test_client.get("/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "degraded"
        assert body["zapi"] == "error: zapi_disconnected"
        assert body["db"] == "ok"

    @pytest.mark.integration
    async def test_zapi_error_degrades(self, test_client, zapi):
        async def _boom():
            raise MessagingGatewayError("instance/status returned status 500", details={"status_code": 500})

        zapi.instance_status = _boom

        response = await test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["zapi"] == "error: zapi_unavailable"

    @pytest.mark.integration
    async def test_redis_down_degrades(self, test_client, zapi):
        async def _broken():
            raise RedisConnectionError("Connection refused")

        with patch("app.domain.services.health_service.get_redis", _broken):
            response = await test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["redis"] == "error: redis_unavailable"

    @pytest.mark.integration
    async def test_errors_hide_infrastructure_details(self, test_client, zapi):
        async def _broken():
            raise RedisConnectionError("Error 111 connecting to 10.0.0.5:6379")

        with patch("app.domain.services.health_service.get_redis", _broken):
            response = await test_client.get("/health/ready")

        assert "10.0.0.5" not in response.text
