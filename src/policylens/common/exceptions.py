"""Custom exceptions for PolicyLens.

Provides a hierarchy of exceptions with stable error codes and
structured error payloads.
"""

from typing import Any


class PolicyLensError(Exception):
    """Base exception for all PolicyLens errors."""

    exit_code: int = 1
    error_code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize exception with optional details.

        Args:
            message: Human-readable error message.
            details: Additional error details, e.g. remediation hints.
            cause: Original exception that caused this error.
        """
        self.message = message or self.message
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured output."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# Caller input errors
class ValidationError(PolicyLensError):
    """Request validation failed."""

    exit_code = 2
    error_code = "VALIDATION_ERROR"
    message = "Request validation failed"


class MissingParameterError(ValidationError):
    """A required request parameter was not supplied."""

    error_code = "MISSING_PARAMETER"
    message = "Required parameter missing"

    def __init__(self, parameter: str) -> None:
        super().__init__(
            f"Missing required parameter: {parameter}",
            details={"parameter": parameter},
        )


class InvalidFlowDataError(ValidationError):
    """Flow data returned by the backend could not be parsed."""

    error_code = "INVALID_FLOW_DATA"
    message = "Invalid flow data format"


# Configuration errors
class ConfigurationError(PolicyLensError):
    """Configuration error."""

    error_code = "CONFIGURATION_ERROR"
    message = "Service configuration error"


# Upstream errors
class ExternalServiceError(PolicyLensError):
    """External service error."""

    exit_code = 3
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service unavailable"


class UpstreamUnavailableError(ExternalServiceError):
    """Flow backend cannot be reached."""

    error_code = "UPSTREAM_UNAVAILABLE"
    message = "Cannot connect to the flow backend"


class PolicyResolutionError(ExternalServiceError):
    """A single policy definition could not be retrieved."""

    error_code = "POLICY_RESOLUTION_ERROR"
    message = "Failed to retrieve policy"
