"""Flow record source backed by the Calico Whisker API."""

from typing import Any, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from policylens.common.config import WhiskerSettings, get_settings
from policylens.common.exceptions import (
    ExternalServiceError,
    InvalidFlowDataError,
    UpstreamUnavailableError,
)
from policylens.common.logging import get_logger
from policylens.common.metrics import (
    FLOW_FETCH_ERRORS,
    FLOW_RECORDS_FETCHED,
    FLOW_RECORDS_REJECTED,
)
from policylens.schemas.flow import RawFlowRecord

logger = get_logger(__name__)


class FlowRecordSource(Protocol):
    """Supplies raw flow records."""

    async def fetch_flow_records(self) -> list[RawFlowRecord]:
        ...


def parse_flow_items(items: list[Any]) -> list[RawFlowRecord]:
    """Validate raw backend items.

    Items that fail validation are logged and skipped so one malformed
    entry does not hide the rest of the window.

    Args:
        items: Decoded ``items`` array of the backend response.

    Returns:
        Parsed records in backend order.
    """
    records: list[RawFlowRecord] = []
    for index, item in enumerate(items):
        try:
            records.append(RawFlowRecord.model_validate(item))
        except PydanticValidationError as e:
            FLOW_RECORDS_REJECTED.inc()
            logger.warning(
                "Skipping invalid flow record",
                index=index,
                errors=e.error_count(),
                error=str(e.errors()[0]["msg"]) if e.errors() else None,
            )
    return records


class WhiskerFlowSource:
    """Fetches flow records from the Whisker backend.

    The backend is expected to be reachable at ``settings.url``; setting
    up the port-forward is the caller's job.
    """

    def __init__(
        self,
        settings: WhiskerSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings().whisker
        self._transport = transport

    async def fetch_flow_records(self) -> list[RawFlowRecord]:
        """Fetch the current flow window.

        Raises:
            UpstreamUnavailableError: If the backend cannot be reached.
            ExternalServiceError: If the backend returns an error.
            InvalidFlowDataError: If the response is not a flow listing.
        """
        url = self._settings.flows_url
        timeout = httpx.Timeout(self._settings.timeout_seconds)

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
                payload = response.json()
        except httpx.ConnectError as e:
            FLOW_FETCH_ERRORS.labels(error_type="connect").inc()
            raise UpstreamUnavailableError(
                "Cannot connect to Calico Whisker. Please ensure port-forward is running.",
                details={
                    "url": url,
                    "remediation": (
                        "kubectl port-forward -n calico-system service/whisker 8081:8081"
                    ),
                },
                cause=e,
            ) from e
        except httpx.HTTPStatusError as e:
            FLOW_FETCH_ERRORS.labels(error_type="http_status").inc()
            raise ExternalServiceError(
                f"Failed to fetch flow logs: HTTP {e.response.status_code}",
                details={"url": url},
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            FLOW_FETCH_ERRORS.labels(error_type=type(e).__name__).inc()
            raise ExternalServiceError(
                f"Failed to fetch flow logs: {e}",
                details={"url": url},
                cause=e,
            ) from e
        except ValueError as e:
            FLOW_FETCH_ERRORS.labels(error_type="decode").inc()
            raise InvalidFlowDataError(
                "Flow backend returned a non-JSON response",
                details={"url": url},
                cause=e,
            ) from e

        if not isinstance(payload, dict):
            raise InvalidFlowDataError(
                "Flow backend response is not an object",
                details={"url": url},
            )

        items = payload.get("items") or []
        records = parse_flow_items(items)
        FLOW_RECORDS_FETCHED.inc(len(records))

        logger.debug("Fetched flow records", url=url, items=len(items), records=len(records))
        return records
