"""Connectivity health checks.

Diagnoses whether the flow backend and the Kubernetes API are reachable
before running an analysis.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from policylens.common.config import Settings, get_settings
from policylens.common.exceptions import PolicyLensError
from policylens.discovery.kubernetes import KubernetesClient
from policylens.ingestion.whisker import FlowRecordSource, WhiskerFlowSource


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthResponse:
    """Complete health check response."""

    status: HealthStatus
    timestamp: datetime
    service: str
    version: str
    components: list[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "service": self.service,
            "version": self.version,
            "components": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "details": c.details if c.details else None,
                }
                for c in self.components
            ],
        }


class HealthChecker:
    """Runs connectivity checks against the external collaborators."""

    def __init__(
        self,
        settings: Settings | None = None,
        source: FlowRecordSource | None = None,
        client: KubernetesClient | None = None,
    ) -> None:
        """Initialize health checker.

        Args:
            settings: Application settings. Uses global settings if not provided.
            source: Flow source to check.
            client: Kubernetes API client to query.
        """
        self._settings = settings or get_settings()
        self._source = source or WhiskerFlowSource(self._settings.whisker)
        self._client = client or KubernetesClient(self._settings.kubernetes)
        self._checks: list[tuple[str, Callable[[], Awaitable[ComponentHealth]]]] = []

    def register_check(
        self,
        name: str,
        check_func: Callable[[], Awaitable[ComponentHealth]],
    ) -> None:
        """Register an additional health check.

        Args:
            name: Name of the component being checked.
            check_func: Async function that returns ComponentHealth.
        """
        self._checks.append((name, check_func))

    async def check_flow_backend(self) -> ComponentHealth:
        """Check that the flow backend answers with a flow listing."""
        start = time.perf_counter()
        try:
            records = await self._source.fetch_flow_records()
        except PolicyLensError as e:
            latency = (time.perf_counter() - start) * 1000
            return ComponentHealth(
                name="flow_backend",
                status=HealthStatus.UNHEALTHY,
                message=e.message,
                latency_ms=round(latency, 2),
                details=e.details,
            )

        latency = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="flow_backend",
            status=HealthStatus.HEALTHY,
            message="Flow backend reachable",
            latency_ms=round(latency, 2),
            details={"records": len(records)},
        )

    async def check_whisker_service(self) -> ComponentHealth:
        """Check that the backend Service exists and exposes its port."""
        k8s = self._settings.kubernetes
        start = time.perf_counter()
        try:
            service = await self._client.get_service(k8s.whisker_namespace, k8s.whisker_service)
        except httpx.HTTPStatusError as e:
            latency = (time.perf_counter() - start) * 1000
            if e.response.status_code == 404:
                message = (
                    f"Service {k8s.whisker_service} not found in "
                    f"{k8s.whisker_namespace} namespace"
                )
            else:
                message = f"Kubernetes API error: HTTP {e.response.status_code}"
            return ComponentHealth(
                name="whisker_service",
                status=HealthStatus.UNHEALTHY,
                message=message,
                latency_ms=round(latency, 2),
            )
        except httpx.HTTPError as e:
            latency = (time.perf_counter() - start) * 1000
            return ComponentHealth(
                name="whisker_service",
                status=HealthStatus.UNHEALTHY,
                message=f"Kubernetes API unreachable: {e}",
                latency_ms=round(latency, 2),
            )

        latency = (time.perf_counter() - start) * 1000
        ports = (service.get("spec") or {}).get("ports") or []
        has_port = any(
            p.get("port") == k8s.whisker_port or p.get("targetPort") == k8s.whisker_port
            for p in ports
        )
        return ComponentHealth(
            name="whisker_service",
            status=HealthStatus.HEALTHY if has_port else HealthStatus.DEGRADED,
            message=(
                f"Service found with {len(ports)} port(s). "
                f"Port {k8s.whisker_port} {'available' if has_port else 'not found'}"
            ),
            latency_ms=round(latency, 2),
            details={"ports": len(ports)},
        )

    async def check(self) -> HealthResponse:
        """Run every check and derive the overall status."""
        components = [
            await self.check_flow_backend(),
            await self.check_whisker_service(),
        ]

        for name, check_func in self._checks:
            try:
                components.append(await check_func())
            except Exception as e:
                components.append(ComponentHealth(
                    name=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"Check failed: {str(e)}",
                ))

        overall_status = HealthStatus.HEALTHY
        for component in components:
            if component.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY
                break
            if component.status == HealthStatus.DEGRADED:
                overall_status = HealthStatus.DEGRADED

        return HealthResponse(
            status=overall_status,
            timestamp=datetime.now(timezone.utc),
            service=self._settings.app_name,
            version=self._settings.app_version,
            components=components,
        )
