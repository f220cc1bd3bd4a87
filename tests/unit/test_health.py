"""Unit tests for connectivity health checks."""

import httpx
import pytest

from policylens.common.exceptions import UpstreamUnavailableError
from policylens.common.health import ComponentHealth, HealthChecker, HealthStatus
from policylens.discovery.kubernetes import KubernetesClient


class StubSource:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error

    async def fetch_flow_records(self):
        if self.error:
            raise self.error
        return self.records


def _client(test_settings, handler) -> KubernetesClient:
    return KubernetesClient(test_settings.kubernetes, transport=httpx.MockTransport(handler))


def _service(port: int) -> dict:
    return {"spec": {"ports": [{"name": "http", "port": port, "targetPort": port}]}}


@pytest.mark.unit
class TestHealthChecker:
    """Test cases for HealthChecker."""

    @pytest.mark.asyncio
    async def test_all_healthy(self, test_settings, make_record):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, json=_service(8081))

        checker = HealthChecker(
            test_settings,
            source=StubSource([make_record()]),
            client=_client(test_settings, handler),
        )

        response = await checker.check()

        assert response.status == HealthStatus.HEALTHY
        assert seen == ["/api/v1/namespaces/calico-system/services/whisker"]
        backend = response.components[0]
        assert backend.details == {"records": 1}
        assert response.to_dict()["components"][1]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_backend_unreachable(self, test_settings):
        checker = HealthChecker(
            test_settings,
            source=StubSource(error=UpstreamUnavailableError("Cannot connect")),
            client=_client(test_settings, lambda r: httpx.Response(200, json=_service(8081))),
        )

        response = await checker.check()

        assert response.status == HealthStatus.UNHEALTHY
        assert response.components[0].message == "Cannot connect"

    @pytest.mark.asyncio
    async def test_service_without_port_degraded(self, test_settings):
        checker = HealthChecker(
            test_settings,
            source=StubSource(),
            client=_client(test_settings, lambda r: httpx.Response(200, json=_service(9000))),
        )

        response = await checker.check()

        assert response.status == HealthStatus.DEGRADED
        assert "Port 8081 not found" in response.components[1].message

    @pytest.mark.asyncio
    async def test_service_missing(self, test_settings):
        checker = HealthChecker(
            test_settings,
            source=StubSource(),
            client=_client(test_settings, lambda r: httpx.Response(404)),
        )

        response = await checker.check()

        assert response.status == HealthStatus.UNHEALTHY
        assert response.components[1].message == (
            "Service whisker not found in calico-system namespace"
        )

    @pytest.mark.asyncio
    async def test_registered_check_failure(self, test_settings):
        async def broken() -> ComponentHealth:
            raise RuntimeError("nope")

        checker = HealthChecker(
            test_settings,
            source=StubSource(),
            client=_client(test_settings, lambda r: httpx.Response(200, json=_service(8081))),
        )
        checker.register_check("extra", broken)

        response = await checker.check()

        assert response.status == HealthStatus.UNHEALTHY
        assert response.components[-1].message == "Check failed: nope"
