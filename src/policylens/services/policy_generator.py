"""Policy draft generation for micro-segmentation.

Synthesizes egress-allow Calico NetworkPolicy drafts from observed
traffic: one policy per source workload (identified by a selector
label), one egress rule per destination namespace/protocol/port.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from policylens.common.exceptions import MissingParameterError
from policylens.common.logging import get_logger
from policylens.resolution.labels import extract_label_value
from policylens.schemas.flow import RawFlowRecord
from policylens.schemas.policy import (
    NAMESPACE_NAME_LABEL,
    EgressDestination,
    EgressRule,
    LabelSelector,
    PolicyDraft,
    PolicyMetadata,
    PolicySpec,
    RulePort,
)

logger = get_logger(__name__)

_NAME_UNSAFE = re.compile(r"[^a-z0-9]")
MAX_PORT = 65535


@dataclass(frozen=True)
class CandidateKey:
    """Distinct endpoint pair, labels included."""

    source_name: str
    source_namespace: str
    source_labels: str | None
    dest_name: str
    dest_namespace: str
    dest_labels: str | None
    protocol: str
    dest_port: int | None


@dataclass
class PolicyCandidate:
    """Observed traffic for one endpoint pair and port."""

    key: CandidateKey
    flow_count: int = 0
    total_packets: int = 0
    total_bytes: int = 0
    actions: set[str] = field(default_factory=set)

    def add(self, record: RawFlowRecord) -> None:
        self.flow_count += 1
        self.total_packets += record.packets_in + record.packets_out
        self.total_bytes += record.bytes_in + record.bytes_out
        self.actions.add(record.action)


def policy_name_for(selector_value: str) -> str:
    """Policy name for a workload, e.g. ``allow-frontend-egress``."""
    return f"allow-{_NAME_UNSAFE.sub('-', selector_value.lower())}-egress"


def has_port(port: int | None) -> bool:
    """Whether a destination port can be written into a rule."""
    return port is not None and 0 < port <= MAX_PORT


class PolicyDraftGenerator:
    """Generates egress-allow policy drafts from flow records.

    Only traffic whose source is in the target namespace is considered;
    inbound traffic from other namespaces does not produce drafts.
    """

    def aggregate_candidates(
        self,
        records: Iterable[RawFlowRecord],
        namespace: str,
    ) -> list[PolicyCandidate]:
        """Collapse records touching ``namespace`` into distinct candidates.

        Args:
            records: Raw flow records.
            namespace: Namespace matched against either endpoint.

        Returns:
            Candidates in first-seen order.
        """
        candidates: dict[CandidateKey, PolicyCandidate] = {}

        for record in records:
            if not record.touches_namespace(namespace):
                continue
            key = CandidateKey(
                source_name=record.source_name,
                source_namespace=record.source_namespace,
                source_labels=record.source_labels,
                dest_name=record.dest_name,
                dest_namespace=record.dest_namespace,
                dest_labels=record.dest_labels,
                protocol=record.protocol,
                dest_port=record.dest_port,
            )
            if key not in candidates:
                candidates[key] = PolicyCandidate(key=key)
            candidates[key].add(record)

        return list(candidates.values())

    def generate(
        self,
        candidates: Iterable[PolicyCandidate],
        namespace: str,
        selector_key: str,
    ) -> list[PolicyDraft]:
        """Build one draft per source workload.

        Args:
            candidates: Aggregated traffic.
            namespace: Namespace the policies are written for.
            selector_key: Label key identifying workloads.

        Returns:
            Drafts in first-seen order of their workloads.
        """
        # selector value -> candidates originating from that workload
        workloads: dict[str, list[PolicyCandidate]] = {}
        skipped = 0

        for candidate in candidates:
            if candidate.key.source_namespace != namespace:
                continue
            selector_value = extract_label_value(candidate.key.source_labels, selector_key)
            if not selector_value:
                skipped += 1
                continue
            workloads.setdefault(selector_value, []).append(candidate)

        if skipped:
            logger.debug(
                "Skipped flows without selector label",
                namespace=namespace,
                selector_key=selector_key,
                skipped=skipped,
            )

        return [
            self._build_draft(selector_value, flows, namespace, selector_key)
            for selector_value, flows in workloads.items()
        ]

    def draft(
        self,
        records: Iterable[RawFlowRecord],
        namespace: str,
        selector_key: str,
    ) -> list[PolicyDraft]:
        """Aggregate records and generate drafts in one step.

        Raises:
            MissingParameterError: If namespace or selector key is empty.
        """
        if not namespace:
            raise MissingParameterError("namespace")
        if not selector_key:
            raise MissingParameterError("selector_key")

        drafts = self.generate(
            self.aggregate_candidates(records, namespace),
            namespace,
            selector_key,
        )
        logger.info(
            "Generated policy drafts",
            namespace=namespace,
            selector_key=selector_key,
            policies=len(drafts),
            rules=sum(len(d.spec.egress) for d in drafts),
        )
        return drafts

    def _build_draft(
        self,
        selector_value: str,
        flows: list[PolicyCandidate],
        namespace: str,
        selector_key: str,
    ) -> PolicyDraft:
        # (dest namespace, protocol, port) -> candidates
        destinations: dict[tuple[str, str, int | None], list[PolicyCandidate]] = {}
        for flow in flows:
            dest_key = (flow.key.dest_namespace, flow.key.protocol, flow.key.dest_port)
            destinations.setdefault(dest_key, []).append(flow)

        rules = [
            self._build_rule(dest_ns, protocol, port, dest_flows, namespace, selector_key)
            for (dest_ns, protocol, port), dest_flows in destinations.items()
        ]

        return PolicyDraft(
            metadata=PolicyMetadata(name=policy_name_for(selector_value), namespace=namespace),
            spec=PolicySpec(
                selector=LabelSelector(match_labels={selector_key: selector_value}),
                egress=rules,
            ),
        )

    def _build_rule(
        self,
        dest_namespace: str,
        protocol: str,
        port: int | None,
        dest_flows: list[PolicyCandidate],
        namespace: str,
        selector_key: str,
    ) -> EgressRule:
        protocol = protocol.upper()
        destination = EgressDestination()

        if dest_namespace != namespace:
            destination.namespace_selector = LabelSelector(
                match_labels={NAMESPACE_NAME_LABEL: dest_namespace},
            )
        else:
            # Peer selector from the first flow's labels; left unscoped otherwise
            peer_value = extract_label_value(dest_flows[0].key.dest_labels, selector_key)
            if peer_value:
                destination.selector = LabelSelector(match_labels={selector_key: peer_value})

        rule = EgressRule(protocol=protocol, destination=destination)
        if has_port(port):
            rule.ports = [RulePort(protocol=protocol, port=port)]
        return rule
