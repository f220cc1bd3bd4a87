"""Flow analysis service.

Entry point tying the flow source and policy resolver to the analysis
components. Each call fetches a fresh record window and returns one
complete document.
"""

from collections.abc import Sequence
from datetime import datetime

from policylens.common.config import Settings, get_settings
from policylens.common.exceptions import MissingParameterError
from policylens.common.logging import get_logger
from policylens.common.metrics import ANALYSIS_DURATION
from policylens.discovery.kubernetes import KubernetesPolicyResolver, PolicyResolver
from policylens.ingestion.filters import RecordFilter, within_time_window
from policylens.ingestion.whisker import FlowRecordSource, WhiskerFlowSource
from policylens.resolution.summary import FlowSummaryBuilder
from policylens.schemas.analysis import BlockedFlowReport
from policylens.schemas.flow import RawFlowRecord
from policylens.schemas.policy import PolicyDraft
from policylens.schemas.summary import NamespaceFlowSummary
from policylens.services.blocked_flows import BlockedFlowAnalyzer
from policylens.services.policy_generator import PolicyDraftGenerator

logger = get_logger(__name__)


class FlowAnalysisService:
    """Fetches flow records and runs the requested analysis."""

    def __init__(
        self,
        source: FlowRecordSource,
        resolver: PolicyResolver,
        settings: Settings | None = None,
    ) -> None:
        """Initialize service.

        Args:
            source: Flow record source.
            resolver: Policy definition lookup used for blocked flows.
            settings: Application settings. Uses global settings if not provided.
        """
        self._settings = settings or get_settings()
        self._source = source
        self._summary_builder = FlowSummaryBuilder()
        self._blocked_analyzer = BlockedFlowAnalyzer(resolver, self._settings.analysis)
        self._draft_generator = PolicyDraftGenerator()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FlowAnalysisService":
        """Build a service talking to the configured backend and cluster."""
        settings = settings or get_settings()
        return cls(
            source=WhiskerFlowSource(settings.whisker),
            resolver=KubernetesPolicyResolver(settings=settings.kubernetes),
            settings=settings,
        )

    async def get_flow_logs(
        self,
        record_filter: RecordFilter | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[RawFlowRecord]:
        """Fetch records, optionally narrowed by time and a caller filter.

        Args:
            record_filter: Opaque predicate filter applied last.
            start_time: Keep records starting at or after this time.
            end_time: Keep records ending at or before this time.

        Returns:
            Matching records in backend order.
        """
        records: Sequence[RawFlowRecord] = await self._source.fetch_flow_records()
        fetched = len(records)

        if start_time or end_time:
            records = within_time_window(records, start_time, end_time)
        if record_filter is not None:
            records = record_filter(records)

        logger.debug("Selected flow records", fetched=fetched, selected=len(records))
        return list(records)

    async def get_namespace_flow_summary(self, namespace: str) -> NamespaceFlowSummary:
        """Summarize traffic touching ``namespace``.

        Raises:
            MissingParameterError: If namespace is empty.
            UpstreamUnavailableError: If the flow backend cannot be reached.
        """
        if not namespace:
            raise MissingParameterError("namespace")

        records = await self._source.fetch_flow_records()
        with ANALYSIS_DURATION.labels(operation="summary").time():
            return self._summary_builder.summarize(namespace, records)

    async def analyze_blocked_flows(self, namespace: str | None = None) -> BlockedFlowReport:
        """Explain denied flows, optionally restricted to ``namespace``.

        Raises:
            UpstreamUnavailableError: If the flow backend cannot be reached.
        """
        records = await self._source.fetch_flow_records()
        with ANALYSIS_DURATION.labels(operation="blocked_flows").time():
            return await self._blocked_analyzer.analyze(records, namespace)

    async def generate_network_policies(
        self,
        namespace: str,
        selector_key: str,
    ) -> list[PolicyDraft]:
        """Draft egress policies for workloads in ``namespace``.

        Raises:
            MissingParameterError: If namespace or selector key is empty.
            UpstreamUnavailableError: If the flow backend cannot be reached.
        """
        if not namespace:
            raise MissingParameterError("namespace")
        if not selector_key:
            raise MissingParameterError("selector_key")

        records = await self._source.fetch_flow_records()
        with ANALYSIS_DURATION.labels(operation="policy_drafts").time():
            return self._draft_generator.draft(records, namespace, selector_key)
