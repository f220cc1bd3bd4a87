"""Pydantic schemas for blocked-flow root cause reports."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from policylens.schemas.flow import PolicyReference
from policylens.schemas.summary import TimeWindow


class BlockingReason(str, Enum):
    """Why a policy is considered responsible for a denial."""

    EXPLICIT_DENY = "explicit deny rule"
    DEFAULT_DENY = "default deny at end of tier"
    ENFORCED_DENY = "enforced deny rule"


class LookupStatus(str, Enum):
    """Outcome of fetching a policy definition."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    UNSUPPORTED = "unsupported"
    ERROR = "error"


class BlockingPolicy(BaseModel):
    """A policy implicated in a denied flow."""

    trigger_policy: PolicyReference
    trigger_chain: list[PolicyReference] = Field(default_factory=list)
    blocking_reason: BlockingReason
    lookup_status: LookupStatus
    policy_yaml: str | None = None
    error: str | None = None


class BlockedFlowDetail(BaseModel):
    """The denied observation itself."""

    source: str
    destination: str
    protocol: str
    port: int | None = None
    action: str
    reporter: str
    start_time: datetime
    end_time: datetime


class BlockedFlowTraffic(BaseModel):
    packets_in: int = 0
    packets_out: int = 0
    bytes_in: int = 0
    bytes_out: int = 0


class BlockedFlowFindings(BaseModel):
    total_blocking_policies: int = 0
    recommendation: str


class BlockedFlowAnalysis(BaseModel):
    """Root cause analysis of one denied record."""

    flow: BlockedFlowDetail
    traffic: BlockedFlowTraffic
    blocking_policies: list[BlockingPolicy] = Field(default_factory=list)
    analysis: BlockedFlowFindings


class BlockedFlowStatistics(BaseModel):
    total_blocked_flows: int = 0
    unique_blocked_connections: int = 0
    time_window: TimeWindow = Field(default_factory=TimeWindow)


class SecurityInsights(BaseModel):
    message: str
    recommendations: list[str] = Field(default_factory=list)


class BlockedFlowReport(BaseModel):
    """Denied-flow report for a namespace, or for all namespaces.

    ``no_blocked_flows`` distinguishes "nothing was denied" from an
    analysis that produced an empty list.
    """

    namespace: str
    no_blocked_flows: bool = False
    message: str | None = None
    analysis: BlockedFlowStatistics = Field(default_factory=BlockedFlowStatistics)
    blocked_flows: list[BlockedFlowAnalysis] = Field(default_factory=list)
    security_insights: SecurityInsights | None = None
