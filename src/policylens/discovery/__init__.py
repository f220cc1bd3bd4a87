"""Discovery of cluster objects referenced by flow records."""

from policylens.discovery.kubernetes import (
    POLICY_RESOURCES,
    KubernetesClient,
    KubernetesPolicyResolver,
    PolicyResolver,
    PolicyResource,
    render_policy_yaml,
)

__all__ = [
    "POLICY_RESOURCES",
    "KubernetesClient",
    "KubernetesPolicyResolver",
    "PolicyResolver",
    "PolicyResource",
    "render_policy_yaml",
]
