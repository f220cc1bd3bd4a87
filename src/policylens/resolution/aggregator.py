"""Flow aggregation.

Merges one-sided flow observations (reported by the source or the
destination endpoint) into canonical bidirectional flows.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from policylens.common.logging import get_logger
from policylens.schemas.flow import FlowAction, PolicyHit, RawFlowRecord, Reporter
from policylens.schemas.summary import FlowStatus

logger = get_logger(__name__)


# Side action shown when no observation came from that side
NOT_REPORTED = "N/A"

ACTION_JOINER = "+"


def policy_sort_key(hit: PolicyHit) -> tuple[str, str, str, int, int, str, str]:
    """Canonical ordering for policy hits."""
    return (
        hit.tier,
        hit.namespace,
        hit.name,
        hit.policy_index,
        hit.rule_index,
        hit.kind,
        hit.action,
    )


@dataclass(frozen=True)
class FlowKey:
    """Key for aggregating flows.

    Allow and Deny observations of the same endpoints and port get
    different keys and are never merged.
    """

    source_name: str
    source_namespace: str
    dest_name: str
    dest_namespace: str
    protocol: str
    dest_port: int | None
    action: str

    @classmethod
    def from_record(cls, record: RawFlowRecord) -> "FlowKey":
        return cls(
            source_name=record.source_name,
            source_namespace=record.source_namespace,
            dest_name=record.dest_name,
            dest_namespace=record.dest_namespace,
            protocol=record.protocol,
            dest_port=record.dest_port,
            action=record.action,
        )


@dataclass
class Flow:
    """Bucket accumulating all observations of one flow key."""

    key: FlowKey
    start_time: datetime
    end_time: datetime
    packets_in: int = 0
    packets_out: int = 0
    bytes_in: int = 0
    bytes_out: int = 0
    record_count: int = 0
    source_actions: set[str] = field(default_factory=set)
    dest_actions: set[str] = field(default_factory=set)
    source_policies: set[str] = field(default_factory=set)
    dest_policies: set[str] = field(default_factory=set)
    enforced_policies: list[PolicyHit] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: RawFlowRecord) -> "Flow":
        flow = cls(
            key=FlowKey.from_record(record),
            start_time=record.start_time,
            end_time=record.end_time,
        )
        flow.add(record)
        return flow

    def add(self, record: RawFlowRecord) -> None:
        """Merge one observation into the bucket."""
        self.packets_in += record.packets_in
        self.packets_out += record.packets_out
        self.bytes_in += record.bytes_in
        self.bytes_out += record.bytes_out
        self.record_count += 1
        self.start_time = min(self.start_time, record.start_time)
        self.end_time = max(self.end_time, record.end_time)

        if record.reporter == Reporter.SOURCE.value:
            side_actions, side_policies = self.source_actions, self.source_policies
        elif record.reporter == Reporter.DESTINATION.value:
            side_actions, side_policies = self.dest_actions, self.dest_policies
        else:
            side_actions, side_policies = None, None

        if side_actions is not None:
            side_actions.add(record.action)

        for hit in record.policies.enforced:
            self.enforced_policies.append(hit)
            if side_policies is not None:
                side_policies.add(hit.display_name)

    def finalize(self) -> None:
        """Put order-dependent state into canonical order."""
        self.enforced_policies.sort(key=policy_sort_key)

    @property
    def source_action(self) -> str:
        """Action seen by the source side, ``Allow+Deny`` style on conflict."""
        return ACTION_JOINER.join(sorted(self.source_actions)) or NOT_REPORTED

    @property
    def dest_action(self) -> str:
        """Action seen by the destination side."""
        return ACTION_JOINER.join(sorted(self.dest_actions)) or NOT_REPORTED

    @property
    def status(self) -> FlowStatus:
        deny = FlowAction.DENY.value
        if self.source_action == deny or self.dest_action == deny:
            return FlowStatus.BLOCKED
        return FlowStatus.ALLOWED

    @property
    def packets_total(self) -> int:
        return self.packets_in + self.packets_out

    @property
    def bytes_total(self) -> int:
        return self.bytes_in + self.bytes_out

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)


class FlowAggregator:
    """Aggregates raw flow records into canonical flows.

    Counters are summed and time windows widened, so the result does
    not depend on the order records arrive in.
    """

    def aggregate(self, records: Iterable[RawFlowRecord]) -> dict[FlowKey, Flow]:
        """Group records by flow key and merge each group.

        Args:
            records: Raw flow records.

        Returns:
            Flows keyed by FlowKey, in first-seen order.
        """
        flows: dict[FlowKey, Flow] = {}
        record_count = 0

        for record in records:
            record_count += 1
            key = FlowKey.from_record(record)
            existing = flows.get(key)
            if existing is None:
                flows[key] = Flow.from_record(record)
            else:
                existing.add(record)

        for flow in flows.values():
            flow.finalize()

        logger.debug(
            "Aggregated flow records",
            records=record_count,
            flows=len(flows),
        )
        return flows


def aggregate(records: Iterable[RawFlowRecord]) -> dict[FlowKey, Flow]:
    """Aggregate records with a default FlowAggregator."""
    return FlowAggregator().aggregate(records)
