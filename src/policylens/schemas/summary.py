"""Pydantic schemas for namespace flow summaries."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from policylens.schemas.flow import PolicyReference


class FlowStatus(str, Enum):
    """Outcome classification of an aggregated flow."""

    ALLOWED = "ALLOWED"
    BLOCKED = "BLOCKED"


class TimeWindow(BaseModel):
    """Time span covered by a set of flows."""

    start: datetime | None = None
    end: datetime | None = None
    duration_ms: int | None = None


# =============================================================================
# Per-flow schemas
# =============================================================================


class FlowEndpoint(BaseModel):
    """One side of an aggregated flow."""

    name: str
    namespace: str
    action: str
    policies: list[str] = Field(default_factory=list)


class FlowConnection(BaseModel):
    """Protocol and destination port."""

    protocol: str
    port: int | None = None


class FlowEnforcement(BaseModel):
    """Enforced policies seen across all observations of a flow."""

    total_policies: int = 0
    unique_policies: list[str] = Field(default_factory=list)
    policy_details: list[PolicyReference] = Field(default_factory=list)


class TrafficCounter(BaseModel):
    """Inbound/outbound counter pair."""

    inbound: int = 0
    outbound: int = 0
    total: int = 0


class FlowTraffic(BaseModel):
    """Packet and byte counters."""

    packets: TrafficCounter = Field(default_factory=TrafficCounter)
    bytes: TrafficCounter = Field(default_factory=TrafficCounter)


class FlowTimeRange(BaseModel):
    """Observed time span of a single flow."""

    start: datetime
    end: datetime
    duration_ms: int


class FlowSummary(BaseModel):
    """Aggregated bidirectional flow."""

    source: FlowEndpoint
    destination: FlowEndpoint
    connection: FlowConnection
    enforcement: FlowEnforcement
    traffic: FlowTraffic
    time_range: FlowTimeRange
    status: FlowStatus
    record_count: int = 0


# =============================================================================
# Namespace summary
# =============================================================================


class SummaryAnalysis(BaseModel):
    """Volume and time coverage of the summary."""

    total_unique_flows: int = 0
    total_log_entries: int = 0
    time_window: TimeWindow = Field(default_factory=TimeWindow)


class FlowStatistics(BaseModel):
    total: int = 0
    allowed: int = 0
    blocked: int = 0


class TrafficStatistics(BaseModel):
    total_packets: int = 0
    total_bytes: int = 0


class PolicyStatistics(BaseModel):
    """Distinct policies applied to flows in the namespace."""

    total_policy_applications: int = 0
    unique_policies: int = 0
    unique_policy_names: list[str] = Field(default_factory=list)
    tiers: list[str] = Field(default_factory=list)
    kinds: list[str] = Field(default_factory=list)


class SummaryStatistics(BaseModel):
    flows: FlowStatistics = Field(default_factory=FlowStatistics)
    traffic: TrafficStatistics = Field(default_factory=TrafficStatistics)
    policies: PolicyStatistics = Field(default_factory=PolicyStatistics)


class SecurityAlerts(BaseModel):
    """Present only when at least one flow is blocked."""

    message: str
    blocked_flows: list[str]


class NamespaceFlowSummary(BaseModel):
    """Traffic and policy summary for one namespace.

    ``no_flows`` is set when no record touched the namespace; counts are
    zero in that case rather than the call failing.
    """

    namespace: str
    no_flows: bool = False
    message: str | None = None
    total_flows: int = 0
    total_log_entries: int = 0
    analysis: SummaryAnalysis = Field(default_factory=SummaryAnalysis)
    statistics: SummaryStatistics = Field(default_factory=SummaryStatistics)
    flows: list[FlowSummary] = Field(default_factory=list)
    security_alerts: SecurityAlerts | None = None
