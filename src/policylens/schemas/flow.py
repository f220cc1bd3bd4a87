"""Pydantic schemas for raw flow records reported by the flow backend."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FlowAction(str, Enum):
    """Verdict reported for a flow or a policy hit."""

    ALLOW = "Allow"
    DENY = "Deny"


class Reporter(str, Enum):
    """Side of the conversation that produced an observation."""

    SOURCE = "Src"
    DESTINATION = "Dst"


class PolicyKind(str, Enum):
    """Closed set of policy kinds a hit can reference.

    Anything the backend reports outside this set is UNSUPPORTED.
    """

    NETWORK_POLICY = "NetworkPolicy"
    GLOBAL_NETWORK_POLICY = "GlobalNetworkPolicy"
    CALICO_NETWORK_POLICY = "CalicoNetworkPolicy"
    STAGED_NETWORK_POLICY = "StagedNetworkPolicy"
    STAGED_GLOBAL_NETWORK_POLICY = "StagedGlobalNetworkPolicy"
    STAGED_KUBERNETES_NETWORK_POLICY = "StagedKubernetesNetworkPolicy"
    UNSUPPORTED = "Unsupported"

    @classmethod
    def from_wire(cls, kind: str | None) -> "PolicyKind":
        """Map a reported kind string onto the closed set."""
        for member in cls:
            if member is not cls.UNSUPPORTED and member.value == kind:
                return member
        return cls.UNSUPPORTED


class PolicyHit(BaseModel):
    """A policy rule that matched a flow.

    ``trigger`` points at the hit that caused this one, e.g. the
    enforced policy whose verdict a staged policy would change.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: str = ""
    name: str = ""
    namespace: str = ""
    tier: str = ""
    action: str = ""
    policy_index: int = 0
    rule_index: int = 0
    trigger: "PolicyHit | None" = None

    @field_validator("namespace", "tier", "action", "kind", "name", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("policy_index", "rule_index", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def display_name(self) -> str:
        """Policy name qualified by its namespace, e.g. ``deny-all (prod)``."""
        return f"{self.name} ({self.namespace})"

    def iter_trigger_chain(self, max_depth: int) -> Iterator["PolicyHit"]:
        """Walk the trigger back-references starting at this hit's trigger.

        Stops after ``max_depth`` hops or when a hit is revisited, so
        malformed input cannot loop forever.
        """
        seen: set[int] = {id(self)}
        current = self.trigger
        depth = 0
        while current is not None and depth < max_depth:
            if id(current) in seen:
                return
            seen.add(id(current))
            yield current
            current = current.trigger
            depth += 1


class FlowPolicies(BaseModel):
    """Enforced and pending (staged) policy hits of one observation."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    enforced: tuple[PolicyHit, ...] = ()
    pending: tuple[PolicyHit, ...] = ()

    @field_validator("enforced", "pending", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return () if v is None else v


class RawFlowRecord(BaseModel):
    """One reporter's observation of traffic between two endpoints.

    Field names follow the backend wire format.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    start_time: datetime
    end_time: datetime
    action: str
    source_name: str
    source_namespace: str = ""
    source_labels: str | None = None
    dest_name: str
    dest_namespace: str = ""
    dest_labels: str | None = None
    protocol: str = ""
    dest_port: int | None = Field(None, ge=0, le=65535)
    reporter: str = ""
    policies: FlowPolicies = Field(default_factory=FlowPolicies)
    packets_in: int = 0
    packets_out: int = 0
    bytes_in: int = 0
    bytes_out: int = 0

    @field_validator("start_time", "end_time")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat timestamps without an offset as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("packets_in", "packets_out", "bytes_in", "bytes_out", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("policies", mode="before")
    @classmethod
    def none_to_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("source_namespace", "dest_namespace", "protocol", "reporter", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def touches_namespace(self, namespace: str) -> bool:
        """Whether either endpoint lives in ``namespace``."""
        return self.source_namespace == namespace or self.dest_namespace == namespace

    @property
    def is_denied(self) -> bool:
        return self.action == FlowAction.DENY.value


class PolicyReference(BaseModel):
    """Flat identity of a policy hit as reported in output documents."""

    kind: str
    name: str
    namespace: str
    tier: str
    action: str
    policy_index: int
    rule_index: int

    @classmethod
    def from_hit(cls, hit: PolicyHit) -> "PolicyReference":
        return cls(
            kind=hit.kind,
            name=hit.name,
            namespace=hit.namespace,
            tier=hit.tier,
            action=hit.action,
            policy_index=hit.policy_index,
            rule_index=hit.rule_index,
        )
