"""Unit tests for flow aggregator."""

import itertools

import pytest

from policylens.resolution.aggregator import (
    NOT_REPORTED,
    Flow,
    FlowAggregator,
    FlowKey,
    aggregate,
)
from policylens.schemas.summary import FlowStatus


def _snapshot(flows: dict[FlowKey, Flow]) -> dict[FlowKey, tuple]:
    """Comparable view of aggregated flows."""
    return {
        key: (
            flow.start_time,
            flow.end_time,
            flow.packets_in,
            flow.packets_out,
            flow.bytes_in,
            flow.bytes_out,
            flow.record_count,
            flow.source_action,
            flow.dest_action,
            tuple(flow.enforced_policies),
        )
        for key, flow in flows.items()
    }


@pytest.mark.unit
class TestFlowKey:
    """Test cases for FlowKey."""

    def test_key_includes_action(self, make_record):
        """Test Allow and Deny observations get different keys."""
        allow = FlowKey.from_record(make_record(action="Allow"))
        deny = FlowKey.from_record(make_record(action="Deny"))

        assert allow != deny
        assert allow.action == "Allow"

    def test_key_is_structural(self, make_record):
        """Test names containing separators cannot collide."""
        a = FlowKey.from_record(make_record(source_name="a|b", dest_name="c"))
        b = FlowKey.from_record(make_record(source_name="a", dest_name="b|c"))

        assert a != b


@pytest.mark.unit
class TestFlowAggregator:
    """Test cases for FlowAggregator."""

    @pytest.fixture
    def aggregator(self) -> FlowAggregator:
        return FlowAggregator()

    def test_empty_input(self, aggregator):
        """Test aggregating nothing yields nothing."""
        assert aggregator.aggregate([]) == {}

    def test_counters_sum(self, aggregator, make_record):
        """Test counters of the same key are summed."""
        records = [
            make_record(packets_in=10, bytes_in=100, packets_out=0, bytes_out=0),
            make_record(packets_in=5, bytes_in=50, packets_out=0, bytes_out=0, reporter="Dst"),
        ]

        flows = aggregator.aggregate(records)

        assert len(flows) == 1
        flow = next(iter(flows.values()))
        assert flow.packets_in == 15
        assert flow.bytes_in == 150
        assert flow.record_count == 2

    def test_allow_and_deny_not_merged(self, aggregator, make_record):
        """Test Allow and Deny of the same endpoints and port stay separate."""
        flows = aggregator.aggregate([
            make_record(action="Allow"),
            make_record(action="Deny"),
        ])

        assert len(flows) == 2
        statuses = sorted(f.status.value for f in flows.values())
        assert statuses == ["ALLOWED", "BLOCKED"]

    def test_time_window_widened(self, aggregator, make_record):
        """Test start is the minimum and end the maximum over contributors."""
        early = make_record(offset_seconds=0)
        late = make_record(offset_seconds=60)

        flow = next(iter(aggregator.aggregate([late, early]).values()))

        assert flow.start_time == early.start_time
        assert flow.end_time == late.end_time
        assert flow.duration_ms == 75_000

    def test_side_actions_from_reporter(self, aggregator, make_record):
        """Test each side's action comes only from its own reports."""
        flow = next(iter(aggregator.aggregate([make_record(reporter="Src")]).values()))

        assert flow.source_action == "Allow"
        assert flow.dest_action == NOT_REPORTED

        flow = next(iter(aggregator.aggregate([
            make_record(reporter="Src"),
            make_record(reporter="Dst"),
        ]).values()))

        assert flow.source_action == "Allow"
        assert flow.dest_action == "Allow"

    def test_unknown_reporter_sets_no_side(self, aggregator, make_record):
        """Test observations without a reporter leave both sides unset."""
        flow = next(iter(aggregator.aggregate([make_record(reporter=None)]).values()))

        assert flow.source_action == NOT_REPORTED
        assert flow.dest_action == NOT_REPORTED
        assert flow.status == FlowStatus.ALLOWED

    def test_same_side_conflict_concatenated(self, make_record):
        """Test conflicting actions on one side are joined, not overwritten."""
        flow = Flow.from_record(make_record(action="Deny"))
        flow.add(make_record(action="Allow"))

        assert flow.source_action == "Allow+Deny"
        # Only an exact "Deny" marks the flow blocked
        assert flow.status == FlowStatus.ALLOWED

    def test_deny_is_blocked(self, aggregator, make_record):
        """Test a denied observation marks the flow blocked."""
        flow = next(iter(aggregator.aggregate([
            make_record(action="Deny", reporter="Dst"),
        ]).values()))

        assert flow.dest_action == "Deny"
        assert flow.status == FlowStatus.BLOCKED

    def test_policies_collected_per_side(self, aggregator, make_record, make_hit):
        """Test enforced hits are kept and named on the reporting side."""
        src_hit = make_hit(name="allow-egress", tier="security")
        dst_hit = make_hit(name="allow-ingress", tier="default")

        flow = next(iter(aggregator.aggregate([
            make_record(reporter="Src", policies={"enforced": [src_hit.model_dump()]}),
            make_record(reporter="Dst", policies={"enforced": [dst_hit.model_dump()]}),
        ]).values()))

        assert flow.source_policies == {"allow-egress (shop)"}
        assert flow.dest_policies == {"allow-ingress (shop)"}
        assert [h.name for h in flow.enforced_policies] == ["allow-ingress", "allow-egress"]

    def test_order_independent(self, make_record, make_hit):
        """Test every permutation of the input yields the same flows."""
        hit_a = make_hit(name="a").model_dump()
        hit_b = make_hit(name="b", tier="security").model_dump()
        records = [
            make_record(offset_seconds=0, policies={"enforced": [hit_b]}),
            make_record(offset_seconds=30, reporter="Dst", policies={"enforced": [hit_a]}),
            make_record(offset_seconds=10, action="Deny", packets_in=3),
            make_record(offset_seconds=20, dest_port=443),
        ]

        expected = _snapshot(aggregate(records))
        for permutation in itertools.permutations(records):
            assert _snapshot(aggregate(permutation)) == expected

    def test_first_seen_key_order(self, aggregator, make_record):
        """Test result keys keep first-seen order."""
        flows = aggregator.aggregate([
            make_record(dest_port=443),
            make_record(dest_port=80),
            make_record(dest_port=443),
        ])

        assert [k.dest_port for k in flows] == [443, 80]
