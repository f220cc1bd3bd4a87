"""Parsing of the bar-delimited label strings carried by flow records.

The backend renders endpoint labels as ``"app=frontend | version=v1"``.
"""

LABEL_SEPARATOR = "|"


def parse_labels(labels: str | None) -> dict[str, str]:
    """Parse a label string into a dict.

    Pairs without a value are skipped. When a key repeats, the first
    occurrence wins.

    Args:
        labels: Label string, possibly None or empty.

    Returns:
        Mapping of label key to value.
    """
    parsed: dict[str, str] = {}
    if not labels:
        return parsed

    for pair in labels.split(LABEL_SEPARATOR):
        # Text after a second "=" is dropped: "a=b=c" reads as a=b
        parts = pair.split("=")
        if len(parts) < 2:
            continue
        key = parts[0].strip()
        value = parts[1].strip()
        if not key or not value:
            continue
        parsed.setdefault(key, value)
    return parsed


def extract_label_value(labels: str | None, key: str) -> str | None:
    """Get the value of one label key, or None when absent."""
    return parse_labels(labels).get(key)
