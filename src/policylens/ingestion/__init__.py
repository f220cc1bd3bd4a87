"""Flow ingestion - retrieval and selection of raw flow records."""

from policylens.ingestion.filters import RecordFilter, in_namespace, within_time_window
from policylens.ingestion.whisker import FlowRecordSource, WhiskerFlowSource, parse_flow_items

__all__ = [
    "FlowRecordSource",
    "RecordFilter",
    "WhiskerFlowSource",
    "in_namespace",
    "parse_flow_items",
    "within_time_window",
]
