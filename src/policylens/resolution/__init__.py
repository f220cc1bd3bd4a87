"""Resolution - turning raw observations into canonical flows.

- Merge one-sided observations into bidirectional flows
- Summarize flows per namespace
- Parse endpoint label strings
"""

from policylens.resolution.aggregator import Flow, FlowAggregator, FlowKey, aggregate
from policylens.resolution.labels import extract_label_value, parse_labels
from policylens.resolution.summary import FlowSummaryBuilder, summarize

__all__ = [
    "Flow",
    "FlowAggregator",
    "FlowKey",
    "FlowSummaryBuilder",
    "aggregate",
    "extract_label_value",
    "parse_labels",
    "summarize",
]
