"""Namespace flow summaries.

Builds the per-namespace traffic and policy overview from aggregated
flows.
"""

from collections.abc import Iterable

from policylens.common.logging import get_logger
from policylens.resolution.aggregator import Flow, FlowAggregator
from policylens.schemas.flow import PolicyReference, RawFlowRecord
from policylens.schemas.summary import (
    FlowConnection,
    FlowEndpoint,
    FlowEnforcement,
    FlowStatistics,
    FlowStatus,
    FlowSummary,
    FlowTimeRange,
    FlowTraffic,
    NamespaceFlowSummary,
    PolicyStatistics,
    SecurityAlerts,
    SummaryAnalysis,
    SummaryStatistics,
    TimeWindow,
    TrafficCounter,
    TrafficStatistics,
)

logger = get_logger(__name__)


def describe_flow(flow: Flow) -> FlowSummary:
    """Render one aggregated flow."""
    key = flow.key
    return FlowSummary(
        source=FlowEndpoint(
            name=key.source_name,
            namespace=key.source_namespace,
            action=flow.source_action,
            policies=sorted(flow.source_policies),
        ),
        destination=FlowEndpoint(
            name=key.dest_name,
            namespace=key.dest_namespace,
            action=flow.dest_action,
            policies=sorted(flow.dest_policies),
        ),
        connection=FlowConnection(protocol=key.protocol, port=key.dest_port),
        enforcement=FlowEnforcement(
            total_policies=len(flow.enforced_policies),
            unique_policies=sorted({hit.display_name for hit in flow.enforced_policies}),
            policy_details=[PolicyReference.from_hit(hit) for hit in flow.enforced_policies],
        ),
        traffic=FlowTraffic(
            packets=TrafficCounter(
                inbound=flow.packets_in,
                outbound=flow.packets_out,
                total=flow.packets_total,
            ),
            bytes=TrafficCounter(
                inbound=flow.bytes_in,
                outbound=flow.bytes_out,
                total=flow.bytes_total,
            ),
        ),
        time_range=FlowTimeRange(
            start=flow.start_time,
            end=flow.end_time,
            duration_ms=flow.duration_ms,
        ),
        status=flow.status,
        record_count=flow.record_count,
    )


def describe_connection(flow: FlowSummary) -> str:
    """Short endpoint form, e.g. ``web → db:5432``; portless flows omit the port."""
    target = flow.destination.name
    if flow.connection.port is not None:
        target = f"{target}:{flow.connection.port}"
    return f"{flow.source.name} → {target}"


class FlowSummaryBuilder:
    """Summarizes the flows touching a namespace."""

    def __init__(self, aggregator: FlowAggregator | None = None) -> None:
        self._aggregator = aggregator or FlowAggregator()

    def summarize(
        self,
        namespace: str,
        records: Iterable[RawFlowRecord],
    ) -> NamespaceFlowSummary:
        """Build the summary document for ``namespace``.

        Args:
            namespace: Namespace to report on; matches either endpoint.
            records: Raw flow records.

        Returns:
            Summary document. Carries the ``no_flows`` marker when no
            record touched the namespace.
        """
        namespace_records = [r for r in records if r.touches_namespace(namespace)]

        if not namespace_records:
            logger.info("No flow records for namespace", namespace=namespace)
            return NamespaceFlowSummary(
                namespace=namespace,
                no_flows=True,
                message=f"No flow logs found for namespace: {namespace}",
            )

        aggregated = self._aggregator.aggregate(namespace_records)
        # sorted() is stable, ties keep first-seen order
        ordered = sorted(aggregated.values(), key=lambda f: f.start_time)
        flows = [describe_flow(flow) for flow in ordered]

        start = min(f.start_time for f in ordered)
        end = max(f.end_time for f in ordered)

        blocked = [f for f in flows if f.status == FlowStatus.BLOCKED]
        allowed_count = len(flows) - len(blocked)

        all_policies = [p for f in flows for p in f.enforcement.policy_details]
        unique_names = sorted({f"{p.name} ({p.namespace})" for p in all_policies})

        security_alerts = None
        if blocked:
            security_alerts = SecurityAlerts(
                message=f"{len(blocked)} blocked flow(s) detected - immediate attention required",
                blocked_flows=[describe_connection(f) for f in blocked],
            )

        logger.info(
            "Built namespace flow summary",
            namespace=namespace,
            records=len(namespace_records),
            flows=len(flows),
            blocked=len(blocked),
        )

        return NamespaceFlowSummary(
            namespace=namespace,
            total_flows=len(flows),
            total_log_entries=len(namespace_records),
            analysis=SummaryAnalysis(
                total_unique_flows=len(aggregated),
                total_log_entries=len(namespace_records),
                time_window=TimeWindow(
                    start=start,
                    end=end,
                    duration_ms=int((end - start).total_seconds() * 1000),
                ),
            ),
            statistics=SummaryStatistics(
                flows=FlowStatistics(
                    total=len(flows),
                    allowed=allowed_count,
                    blocked=len(blocked),
                ),
                traffic=TrafficStatistics(
                    total_packets=sum(f.traffic.packets.total for f in flows),
                    total_bytes=sum(f.traffic.bytes.total for f in flows),
                ),
                policies=PolicyStatistics(
                    total_policy_applications=len(all_policies),
                    unique_policies=len(unique_names),
                    unique_policy_names=unique_names,
                    tiers=sorted({p.tier for p in all_policies if p.tier}),
                    kinds=sorted({p.kind for p in all_policies if p.kind}),
                ),
            ),
            flows=flows,
            security_alerts=security_alerts,
        )


def summarize(namespace: str, records: Iterable[RawFlowRecord]) -> NamespaceFlowSummary:
    """Summarize with a default FlowSummaryBuilder."""
    return FlowSummaryBuilder().summarize(namespace, records)
