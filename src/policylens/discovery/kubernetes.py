"""Kubernetes API integration.

Retrieves policy definitions referenced by flow records and the
flow backend's Service object.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import yaml

from policylens.common.config import KubernetesSettings, get_settings
from policylens.common.exceptions import PolicyResolutionError
from policylens.common.logging import get_logger
from policylens.common.metrics import POLICY_LOOKUP_LATENCY, POLICY_LOOKUPS
from policylens.schemas.flow import PolicyKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class PolicyResource:
    """API location of one policy kind."""

    api_path: str
    plural: str
    namespaced: bool

    def path(self, name: str, namespace: str | None) -> str:
        if self.namespaced:
            return f"{self.api_path}/namespaces/{namespace}/{self.plural}/{name}"
        return f"{self.api_path}/{self.plural}/{name}"


# Only these kinds can be looked up; everything else resolves to None
POLICY_RESOURCES: dict[PolicyKind, PolicyResource] = {
    PolicyKind.NETWORK_POLICY: PolicyResource(
        api_path="/apis/networking.k8s.io/v1",
        plural="networkpolicies",
        namespaced=True,
    ),
    PolicyKind.CALICO_NETWORK_POLICY: PolicyResource(
        api_path="/apis/projectcalico.org/v3",
        plural="networkpolicies",
        namespaced=True,
    ),
    PolicyKind.GLOBAL_NETWORK_POLICY: PolicyResource(
        api_path="/apis/projectcalico.org/v3",
        plural="globalnetworkpolicies",
        namespaced=False,
    ),
}


class PolicyResolver(Protocol):
    """Looks up the definition of a policy referenced by a flow."""

    def supports(self, kind: str) -> bool:
        ...

    async def resolve_policy(
        self,
        name: str,
        namespace: str | None,
        kind: str,
    ) -> str | None:
        ...


class KubernetesClient:
    """Lightweight Kubernetes API client."""

    def __init__(
        self,
        settings: KubernetesSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings().kubernetes
        self._transport = transport

    def _build_headers(self) -> dict[str, str]:
        token = self._settings.token
        if not token and self._settings.token_file:
            try:
                token = self._settings.token_file.read_text().strip()
            except OSError:
                token = None
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _build_verify(self) -> bool | str:
        if not self._settings.verify_ssl:
            return False
        if self._settings.ca_cert_path:
            return str(self._settings.ca_cert_path)
        return True

    def _base_url(self) -> str:
        return self._settings.api_server.rstrip("/")

    async def get(self, path: str) -> dict[str, Any]:
        """GET an API path and return the decoded JSON object.

        Raises:
            httpx.HTTPStatusError: On non-2xx responses.
            httpx.HTTPError: On transport failures and timeouts.
        """
        url = f"{self._base_url()}{path}"
        timeout = httpx.Timeout(self._settings.timeout_seconds)
        async with httpx.AsyncClient(
            verify=self._build_verify(),
            timeout=timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(url, headers=self._build_headers())
            response.raise_for_status()
            return response.json()

    async def get_service(self, namespace: str, name: str) -> dict[str, Any]:
        return await self.get(f"/api/v1/namespaces/{namespace}/services/{name}")


def render_policy_yaml(policy: dict[str, Any]) -> str:
    """Render an API object as YAML the way ``kubectl get -o yaml`` shows it."""
    metadata = policy.get("metadata")
    if isinstance(metadata, dict) and "managedFields" in metadata:
        policy = {**policy, "metadata": {k: v for k, v in metadata.items() if k != "managedFields"}}
    return yaml.safe_dump(policy, sort_keys=False, default_flow_style=False).strip()


class KubernetesPolicyResolver:
    """Resolves policy definitions through the Kubernetes API.

    Returns None for kinds outside POLICY_RESOURCES and for policies the
    API reports as missing. Transport failures and timeouts raise
    PolicyResolutionError so callers can record the reason.
    """

    def __init__(
        self,
        client: KubernetesClient | None = None,
        settings: KubernetesSettings | None = None,
    ) -> None:
        self._settings = settings or get_settings().kubernetes
        self._client = client or KubernetesClient(self._settings)

    def supports(self, kind: str) -> bool:
        return PolicyKind.from_wire(kind) in POLICY_RESOURCES

    async def resolve_policy(
        self,
        name: str,
        namespace: str | None,
        kind: str,
    ) -> str | None:
        """Fetch a policy definition as YAML text.

        Args:
            name: Policy name.
            namespace: Policy namespace; ignored for cluster scoped kinds.
            kind: Policy kind as reported in the flow record.

        Returns:
            YAML text, or None when unsupported or not found.

        Raises:
            PolicyResolutionError: If the API call fails or times out.
        """
        resource = POLICY_RESOURCES.get(PolicyKind.from_wire(kind))
        if resource is None:
            POLICY_LOOKUPS.labels(kind=kind or "unknown", status="unsupported").inc()
            return None

        path = resource.path(name, namespace or self._settings.default_namespace)

        with POLICY_LOOKUP_LATENCY.time():
            try:
                policy = await self._client.get(path)
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 404:
                    POLICY_LOOKUPS.labels(kind=kind, status="not_found").inc()
                    logger.debug("Policy not found", name=name, namespace=namespace, kind=kind)
                    return None
                POLICY_LOOKUPS.labels(kind=kind, status="error").inc()
                raise PolicyResolutionError(
                    f"Failed to retrieve policy: HTTP {e.response.status_code}",
                    details={"name": name, "namespace": namespace, "kind": kind},
                    cause=e,
                ) from e
            except httpx.TimeoutException as e:
                POLICY_LOOKUPS.labels(kind=kind, status="error").inc()
                raise PolicyResolutionError(
                    f"Failed to retrieve policy: timed out after "
                    f"{self._settings.timeout_seconds:g}s",
                    details={"name": name, "namespace": namespace, "kind": kind},
                    cause=e,
                ) from e
            except httpx.HTTPError as e:
                POLICY_LOOKUPS.labels(kind=kind, status="error").inc()
                raise PolicyResolutionError(
                    f"Failed to retrieve policy: {e}",
                    details={"name": name, "namespace": namespace, "kind": kind},
                    cause=e,
                ) from e

        POLICY_LOOKUPS.labels(kind=kind, status="found").inc()
        return render_policy_yaml(policy)
