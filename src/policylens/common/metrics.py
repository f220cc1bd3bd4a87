"""Prometheus metrics for PolicyLens.

Provides pre-defined metrics for monitoring flow retrieval, policy
lookups and analysis latency.
"""

from prometheus_client import Counter, Histogram, Info

# Application info
APP_INFO = Info(
    "policylens",
    "PolicyLens application information",
)

# Flow retrieval metrics
FLOW_RECORDS_FETCHED = Counter(
    "policylens_flow_records_fetched_total",
    "Total number of flow records received from the backend",
)

FLOW_RECORDS_REJECTED = Counter(
    "policylens_flow_records_rejected_total",
    "Total number of flow records that failed validation",
)

FLOW_FETCH_ERRORS = Counter(
    "policylens_flow_fetch_errors_total",
    "Total number of failed flow backend requests",
    ["error_type"],
)

# Policy lookup metrics
POLICY_LOOKUPS = Counter(
    "policylens_policy_lookups_total",
    "Total number of policy definition lookups",
    ["kind", "status"],  # status: found, not_found, unsupported, error
)

POLICY_LOOKUP_LATENCY = Histogram(
    "policylens_policy_lookup_latency_seconds",
    "Policy definition lookup latency",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Analysis metrics
ANALYSIS_DURATION = Histogram(
    "policylens_analysis_duration_seconds",
    "Time to build an analysis document",
    ["operation"],  # summary, blocked_flows, policy_drafts
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric.

    Args:
        version: Application version.
        environment: Deployment environment.
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
