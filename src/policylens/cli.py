"""Command line entry point.

Usage:
    policylens summary payments
    policylens blocked --namespace payments
    policylens draft payments app
    policylens flows --start 2024-01-01T00:00:00Z
    policylens health

Every command prints one JSON document on stdout. Failures are printed
as a JSON error object and exit non-zero.
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from functools import partial
from typing import Any

from policylens.common.config import load_settings
from policylens.common.exceptions import ConfigurationError, PolicyLensError
from policylens.common.health import HealthChecker, HealthStatus
from policylens.common.logging import bind_context, get_logger, setup_logging
from policylens.common.metrics import set_app_info
from policylens.ingestion.filters import in_namespace
from policylens.services.flow_analysis import FlowAnalysisService

logger = get_logger(__name__)


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid timestamp: {value}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="policylens",
        description="Analyze Calico Whisker flow logs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    flows = subparsers.add_parser("flows", help="List raw flow records")
    flows.add_argument("--namespace", help="Only records touching this namespace")
    flows.add_argument("--start", type=_parse_timestamp, help="Earliest start time (RFC 3339)")
    flows.add_argument("--end", type=_parse_timestamp, help="Latest end time (RFC 3339)")

    summary = subparsers.add_parser("summary", help="Summarize traffic for a namespace")
    summary.add_argument("namespace", help="Namespace to summarize")

    blocked = subparsers.add_parser("blocked", help="Explain denied flows")
    blocked.add_argument("--namespace", help="Restrict analysis to this namespace")

    draft = subparsers.add_parser("draft", help="Draft egress-allow policies")
    draft.add_argument("namespace", help="Namespace the policies are written for")
    draft.add_argument("selector_key", help="Label key identifying workloads, e.g. app")

    subparsers.add_parser("health", help="Check backend and cluster connectivity")

    return parser


async def run(args: argparse.Namespace) -> tuple[Any, int]:
    """Execute one command and return the document and exit code."""
    if args.command == "health":
        response = await HealthChecker().check()
        exit_code = 0 if response.status != HealthStatus.UNHEALTHY else 1
        return response.to_dict(), exit_code

    service = FlowAnalysisService.from_settings()

    if args.command == "flows":
        record_filter = None
        if args.namespace:
            record_filter = partial(in_namespace, namespace=args.namespace)
        records = await service.get_flow_logs(record_filter, args.start, args.end)
        return [r.model_dump(mode="json") for r in records], 0

    if args.command == "summary":
        summary = await service.get_namespace_flow_summary(args.namespace)
        return summary.model_dump(mode="json"), 0

    if args.command == "blocked":
        report = await service.analyze_blocked_flows(args.namespace)
        return report.model_dump(mode="json"), 0

    drafts = await service.generate_network_policies(args.namespace, args.selector_key)
    return [d.to_manifest() for d in drafts], 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    bind_context(command=args.command)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(json.dumps(e.to_dict(), indent=2))
        return e.exit_code

    setup_logging(settings.logging)
    set_app_info(settings.app_version, settings.environment)

    try:
        document, exit_code = asyncio.run(run(args))
    except PolicyLensError as e:
        logger.error("Command failed", error_code=e.error_code)
        print(json.dumps(e.to_dict(), indent=2))
        return e.exit_code

    print(json.dumps(document, indent=2, ensure_ascii=False))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
