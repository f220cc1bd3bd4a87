"""Unit tests for label string parsing."""

import pytest

from policylens.resolution.labels import extract_label_value, parse_labels


@pytest.mark.unit
class TestParseLabels:
    """Test cases for parse_labels."""

    def test_bar_delimited_pairs(self):
        assert parse_labels("app=frontend | version=v1") == {
            "app": "frontend",
            "version": "v1",
        }

    def test_empty_input(self):
        assert parse_labels(None) == {}
        assert parse_labels("") == {}

    def test_malformed_pairs_skipped(self):
        """Test pairs without key, separator or value are ignored."""
        assert parse_labels("app= | =x | flag | tier=web") == {"tier": "web"}

    def test_first_match_wins(self):
        assert parse_labels("app=a|app=b") == {"app": "a"}

    def test_second_equals_truncates_value(self):
        """Test only the text between the first and second "=" is kept."""
        assert parse_labels("config=a=b") == {"config": "a"}
        assert extract_label_value("app=web=v2 | tier=api", "app") == "web"


@pytest.mark.unit
class TestExtractLabelValue:
    """Test cases for extract_label_value."""

    def test_present(self):
        assert extract_label_value("app=frontend | tier=web", "tier") == "web"

    def test_absent(self):
        assert extract_label_value("app=frontend", "tier") is None
        assert extract_label_value(None, "app") is None
