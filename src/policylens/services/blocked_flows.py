"""Root cause analysis for denied flows.

For every denied record, finds the policy hits responsible for the
verdict, walks their trigger back-references and fetches the
definitions of the triggering policies.
"""

import asyncio
from collections.abc import Iterable

from policylens.common.config import AnalysisSettings, get_settings
from policylens.common.exceptions import PolicyResolutionError
from policylens.common.logging import get_logger
from policylens.discovery.kubernetes import PolicyResolver
from policylens.schemas.analysis import (
    BlockedFlowAnalysis,
    BlockedFlowDetail,
    BlockedFlowFindings,
    BlockedFlowReport,
    BlockedFlowStatistics,
    BlockedFlowTraffic,
    BlockingPolicy,
    BlockingReason,
    LookupStatus,
    SecurityInsights,
)
from policylens.schemas.flow import FlowAction, PolicyHit, PolicyReference, RawFlowRecord
from policylens.schemas.summary import TimeWindow

logger = get_logger(__name__)

ALL_NAMESPACES = "all"

REVIEW_RECOMMENDATION = (
    "Review the identified policies to understand why traffic is being blocked. "
    "Consider modifying the policy rules if this traffic should be allowed."
)
NO_POLICY_RECOMMENDATION = (
    "No specific blocking policies identified. "
    "This may be due to default deny behavior or policy ordering."
)
GENERAL_RECOMMENDATIONS = [
    "Review each blocking policy to ensure it aligns with your security requirements",
    "Consider if any blocked flows represent legitimate traffic that should be allowed",
    "Verify that policy ordering and tier configuration are correct",
    "Monitor for patterns that might indicate security threats or misconfigurations",
]


def blocking_candidates(record: RawFlowRecord) -> list[tuple[PolicyHit, BlockingReason]]:
    """Policy hits implicated in a denied record, in report order.

    Pending hits with a trigger come first, then enforced Deny hits with
    a trigger. The two passes are not deduplicated.
    """
    candidates: list[tuple[PolicyHit, BlockingReason]] = []

    for hit in record.policies.pending:
        if hit.trigger is None or not hit.trigger.name:
            continue
        if hit.action == FlowAction.DENY.value:
            reason = BlockingReason.EXPLICIT_DENY
        else:
            reason = BlockingReason.DEFAULT_DENY
        candidates.append((hit, reason))

    for hit in record.policies.enforced:
        if hit.action != FlowAction.DENY.value:
            continue
        if hit.trigger is None or not hit.trigger.name:
            continue
        candidates.append((hit, BlockingReason.ENFORCED_DENY))

    return candidates


class BlockedFlowAnalyzer:
    """Builds blocked-flow reports.

    Records are analyzed concurrently, one task per denied record,
    bounded by ``max_concurrent_lookups``. Results keep the order of the
    filtered input regardless of completion order.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        settings: AnalysisSettings | None = None,
    ) -> None:
        """Initialize analyzer.

        Args:
            resolver: Policy definition lookup.
            settings: Analysis settings. Uses global settings if not provided.
        """
        if settings is None:
            settings = get_settings().analysis

        self._resolver = resolver
        self._max_trigger_depth = settings.max_trigger_depth
        self._max_concurrent = settings.max_concurrent_lookups

    async def analyze(
        self,
        records: Iterable[RawFlowRecord],
        namespace: str | None = None,
    ) -> BlockedFlowReport:
        """Analyze denied records.

        Args:
            records: Raw flow records.
            namespace: Optional namespace; matches either endpoint.

        Returns:
            Report document. Carries the ``no_blocked_flows`` marker when
            nothing was denied.
        """
        scope = namespace or ALL_NAMESPACES
        denied = [r for r in records if r.is_denied]
        if namespace:
            denied = [r for r in denied if r.touches_namespace(namespace)]

        if not denied:
            logger.info("No blocked flows", namespace=scope)
            return BlockedFlowReport(
                namespace=scope,
                no_blocked_flows=True,
                message="No blocked flows found",
            )

        semaphore = asyncio.Semaphore(self._max_concurrent)
        results = await asyncio.gather(
            *(self._analyze_record(r, semaphore) for r in denied)
        )

        connections = {(r.source_name, r.dest_name, r.dest_port) for r in denied}
        start = min(r.start_time for r in denied)
        end = max(r.end_time for r in denied)

        logger.info(
            "Analyzed blocked flows",
            namespace=scope,
            blocked=len(denied),
            connections=len(connections),
            blocking_policies=sum(len(r.blocking_policies) for r in results),
        )

        return BlockedFlowReport(
            namespace=scope,
            analysis=BlockedFlowStatistics(
                total_blocked_flows=len(denied),
                unique_blocked_connections=len(connections),
                time_window=TimeWindow(
                    start=start,
                    end=end,
                    duration_ms=int((end - start).total_seconds() * 1000),
                ),
            ),
            blocked_flows=list(results),
            security_insights=SecurityInsights(
                message=f"{len(denied)} blocked flow(s) detected",
                recommendations=list(GENERAL_RECOMMENDATIONS),
            ),
        )

    async def _analyze_record(
        self,
        record: RawFlowRecord,
        semaphore: asyncio.Semaphore,
    ) -> BlockedFlowAnalysis:
        async with semaphore:
            blocking_policies = [
                await self._resolve_blocking_policy(hit, reason)
                for hit, reason in blocking_candidates(record)
            ]

        return BlockedFlowAnalysis(
            flow=BlockedFlowDetail(
                source=f"{record.source_name} ({record.source_namespace})",
                destination=f"{record.dest_name} ({record.dest_namespace})",
                protocol=record.protocol,
                port=record.dest_port,
                action=record.action,
                reporter=record.reporter,
                start_time=record.start_time,
                end_time=record.end_time,
            ),
            traffic=BlockedFlowTraffic(
                packets_in=record.packets_in,
                packets_out=record.packets_out,
                bytes_in=record.bytes_in,
                bytes_out=record.bytes_out,
            ),
            blocking_policies=blocking_policies,
            analysis=BlockedFlowFindings(
                total_blocking_policies=len(blocking_policies),
                recommendation=(
                    REVIEW_RECOMMENDATION if blocking_policies else NO_POLICY_RECOMMENDATION
                ),
            ),
        )

    async def _resolve_blocking_policy(
        self,
        hit: PolicyHit,
        reason: BlockingReason,
    ) -> BlockingPolicy:
        """Fetch the definition of the policy that triggered ``hit``.

        Lookup failures are recorded on the finding and never propagate.
        """
        trigger = hit.trigger
        chain = [
            PolicyReference.from_hit(t)
            for t in hit.iter_trigger_chain(self._max_trigger_depth)
        ]

        if not self._resolver.supports(trigger.kind):
            return BlockingPolicy(
                trigger_policy=PolicyReference.from_hit(trigger),
                trigger_chain=chain,
                blocking_reason=reason,
                lookup_status=LookupStatus.UNSUPPORTED,
            )

        try:
            policy_yaml = await self._resolver.resolve_policy(
                trigger.name,
                trigger.namespace or None,
                trigger.kind,
            )
        except Exception as e:
            logger.warning(
                "Policy lookup failed",
                name=trigger.name,
                namespace=trigger.namespace,
                kind=trigger.kind,
                error=str(e),
            )
            error = str(e) if isinstance(e, PolicyResolutionError) else f"Failed to retrieve policy: {e}"
            return BlockingPolicy(
                trigger_policy=PolicyReference.from_hit(trigger),
                trigger_chain=chain,
                blocking_reason=reason,
                lookup_status=LookupStatus.ERROR,
                error=error,
            )

        return BlockingPolicy(
            trigger_policy=PolicyReference.from_hit(trigger),
            trigger_chain=chain,
            blocking_reason=reason,
            lookup_status=LookupStatus.FOUND if policy_yaml is not None else LookupStatus.NOT_FOUND,
            policy_yaml=policy_yaml,
        )
