"""Unit tests for Kubernetes policy resolution."""

import httpx
import pytest
import yaml

from policylens.common.config import KubernetesSettings
from policylens.common.exceptions import PolicyResolutionError
from policylens.discovery.kubernetes import (
    POLICY_RESOURCES,
    KubernetesClient,
    KubernetesPolicyResolver,
    render_policy_yaml,
)
from policylens.schemas.flow import PolicyKind

NETWORK_POLICY = {
    "apiVersion": "projectcalico.org/v3",
    "kind": "NetworkPolicy",
    "metadata": {
        "name": "default.deny-db",
        "namespace": "shop",
        "managedFields": [{"manager": "kubectl"}],
    },
    "spec": {"tier": "default", "types": ["Egress"], "egress": [{"action": "Deny"}]},
}


@pytest.fixture
def k8s_settings() -> KubernetesSettings:
    return KubernetesSettings(
        api_server="https://k8s.test/",
        token="secret",
        token_file=None,
        timeout_seconds=2.0,
        default_namespace="fallback",
    )


def _resolver(settings: KubernetesSettings, handler) -> KubernetesPolicyResolver:
    client = KubernetesClient(settings, transport=httpx.MockTransport(handler))
    return KubernetesPolicyResolver(client, settings)


@pytest.mark.unit
class TestRenderPolicyYaml:
    """Test cases for render_policy_yaml."""

    def test_managed_fields_dropped(self):
        text = render_policy_yaml(NETWORK_POLICY)

        assert "managedFields" not in text
        assert yaml.safe_load(text)["metadata"] == {"name": "default.deny-db", "namespace": "shop"}

    def test_key_order_kept(self):
        text = render_policy_yaml(NETWORK_POLICY)

        assert text.splitlines()[0] == "apiVersion: projectcalico.org/v3"


@pytest.mark.unit
class TestKubernetesPolicyResolver:
    """Test cases for KubernetesPolicyResolver."""

    def test_supported_kinds(self, k8s_settings):
        resolver = KubernetesPolicyResolver(KubernetesClient(k8s_settings), k8s_settings)

        assert resolver.supports("NetworkPolicy")
        assert resolver.supports("GlobalNetworkPolicy")
        assert not resolver.supports("StagedNetworkPolicy")
        assert not resolver.supports("AdminNetworkPolicy")
        assert PolicyKind.UNSUPPORTED not in POLICY_RESOURCES

    @pytest.mark.asyncio
    async def test_namespaced_lookup(self, k8s_settings):
        """Test namespaced kinds are fetched from the namespace path."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=NETWORK_POLICY)

        text = await _resolver(k8s_settings, handler).resolve_policy(
            "default.deny-db", "shop", "CalicoNetworkPolicy"
        )

        assert seen[0].url.path == (
            "/apis/projectcalico.org/v3/namespaces/shop/networkpolicies/default.deny-db"
        )
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert yaml.safe_load(text)["spec"]["tier"] == "default"

    @pytest.mark.asyncio
    async def test_kubernetes_network_policy_path(self, k8s_settings):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, json={"kind": "NetworkPolicy"})

        await _resolver(k8s_settings, handler).resolve_policy("web", None, "NetworkPolicy")

        assert seen == ["/apis/networking.k8s.io/v1/namespaces/fallback/networkpolicies/web"]

    @pytest.mark.asyncio
    async def test_global_policy_ignores_namespace(self, k8s_settings):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, json={"kind": "GlobalNetworkPolicy"})

        await _resolver(k8s_settings, handler).resolve_policy(
            "security.block", "shop", "GlobalNetworkPolicy"
        )

        assert seen == ["/apis/projectcalico.org/v3/globalnetworkpolicies/security.block"]

    @pytest.mark.asyncio
    async def test_unsupported_kind_makes_no_call(self, k8s_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("unexpected request")

        resolver = _resolver(k8s_settings, handler)

        assert await resolver.resolve_policy("x", "shop", "StagedNetworkPolicy") is None

    @pytest.mark.asyncio
    async def test_not_found(self, k8s_settings):
        resolver = _resolver(k8s_settings, lambda r: httpx.Response(404))

        assert await resolver.resolve_policy("gone", "shop", "NetworkPolicy") is None

    @pytest.mark.asyncio
    async def test_server_error(self, k8s_settings):
        resolver = _resolver(k8s_settings, lambda r: httpx.Response(500))

        with pytest.raises(PolicyResolutionError) as exc_info:
            await resolver.resolve_policy("web", "shop", "NetworkPolicy")

        assert exc_info.value.message == "Failed to retrieve policy: HTTP 500"
        assert exc_info.value.details["name"] == "web"

    @pytest.mark.asyncio
    async def test_timeout(self, k8s_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(PolicyResolutionError) as exc_info:
            await _resolver(k8s_settings, handler).resolve_policy("web", "shop", "NetworkPolicy")

        assert exc_info.value.message == "Failed to retrieve policy: timed out after 2s"
