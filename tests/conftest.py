"""Pytest configuration and fixtures for PolicyLens tests."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from policylens.common.config import (
    AnalysisSettings,
    KubernetesSettings,
    Settings,
    WhiskerSettings,
)
from policylens.schemas.flow import PolicyHit, RawFlowRecord

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings() -> Settings:
    """Settings that never reach a real cluster."""
    return Settings(
        environment="development",
        whisker=WhiskerSettings(url="http://whisker.test", timeout_seconds=1.0),
        kubernetes=KubernetesSettings(
            api_server="https://k8s.test",
            token="test-token",
            token_file=None,
            timeout_seconds=2.0,
        ),
        analysis=AnalysisSettings(max_concurrent_lookups=4, max_trigger_depth=8),
    )


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def base_time() -> datetime:
    """Start time of records built with offset_seconds=0."""
    return BASE_TIME


def build_record_data(**overrides: Any) -> dict[str, Any]:
    """Backend wire representation of one flow observation."""
    offset = overrides.pop("offset_seconds", 0)
    data: dict[str, Any] = {
        "start_time": (BASE_TIME + timedelta(seconds=offset)).isoformat(),
        "end_time": (BASE_TIME + timedelta(seconds=offset + 15)).isoformat(),
        "action": "Allow",
        "source_name": "frontend-7d9f",
        "source_namespace": "shop",
        "source_labels": "app=frontend | tier=web",
        "dest_name": "checkout-5c4b",
        "dest_namespace": "shop",
        "dest_labels": "app=checkout | tier=api",
        "protocol": "tcp",
        "dest_port": 8080,
        "reporter": "Src",
        "policies": {"enforced": [], "pending": []},
        "packets_in": 10,
        "packets_out": 5,
        "bytes_in": 1000,
        "bytes_out": 500,
    }
    data.update(overrides)
    return data


@pytest.fixture
def record_data() -> Callable[..., dict[str, Any]]:
    """Factory for wire-format flow items."""
    return build_record_data


@pytest.fixture
def make_record() -> Callable[..., RawFlowRecord]:
    """Factory for parsed flow records."""

    def _make(**overrides: Any) -> RawFlowRecord:
        return RawFlowRecord.model_validate(build_record_data(**overrides))

    return _make


@pytest.fixture
def make_hit() -> Callable[..., PolicyHit]:
    """Factory for policy hits."""

    def _make(**overrides: Any) -> PolicyHit:
        data: dict[str, Any] = {
            "kind": "CalicoNetworkPolicy",
            "name": "default.allow-web",
            "namespace": "shop",
            "tier": "default",
            "action": "Allow",
            "policy_index": 0,
            "rule_index": 0,
            "trigger": None,
        }
        data.update(overrides)
        return PolicyHit.model_validate(data)

    return _make


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
