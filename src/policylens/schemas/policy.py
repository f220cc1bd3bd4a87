"""Pydantic schemas for generated Calico network policy drafts.

Field aliases follow the Kubernetes object layout, so documents are
serialized with ``by_alias=True``.
"""

from pydantic import BaseModel, ConfigDict, Field

CALICO_API_VERSION = "projectcalico.org/v3"
NAMESPACE_NAME_LABEL = "kubernetes.io/metadata.name"


class DraftModel(BaseModel):
    """Base for draft documents: accepts field names and aliases."""

    model_config = ConfigDict(populate_by_name=True)


class LabelSelector(DraftModel):
    match_labels: dict[str, str] = Field(default_factory=dict, alias="matchLabels")


class EgressDestination(DraftModel):
    """Peer of an egress rule; empty means any destination."""

    namespace_selector: LabelSelector | None = Field(None, alias="namespaceSelector")
    selector: LabelSelector | None = None


class RulePort(DraftModel):
    protocol: str
    port: int = Field(..., ge=1, le=65535)


class EgressRule(DraftModel):
    action: str = "Allow"
    protocol: str
    destination: EgressDestination = Field(default_factory=EgressDestination)
    ports: list[RulePort] | None = None


class PolicyMetadata(DraftModel):
    name: str
    namespace: str


class PolicySpec(DraftModel):
    selector: LabelSelector
    types: list[str] = Field(default_factory=lambda: ["Egress"])
    egress: list[EgressRule] = Field(default_factory=list)


class PolicyDraft(DraftModel):
    """Egress-allow NetworkPolicy synthesized from observed traffic."""

    api_version: str = Field(CALICO_API_VERSION, alias="apiVersion")
    kind: str = "NetworkPolicy"
    metadata: PolicyMetadata
    spec: PolicySpec

    def to_manifest(self) -> dict:
        """Kubernetes manifest form of the draft."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
