"""Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
Each collaborator (flow backend, Kubernetes API, analysis engine,
logging) has its own prefixed section.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from policylens.common.exceptions import ConfigurationError


class WhiskerSettings(BaseSettings):
    """Calico Whisker flow backend configuration."""

    model_config = SettingsConfigDict(env_prefix="WHISKER_")

    # Usually a local port-forward to service/whisker in calico-system
    url: str = "http://127.0.0.1:8081"
    endpoint: str = "/whisker-backend/flows"
    timeout_seconds: float = Field(default=10.0, ge=0.1, le=300.0)

    @property
    def flows_url(self) -> str:
        """Full URL of the flow listing endpoint."""
        return f"{self.url.rstrip('/')}/{self.endpoint.lstrip('/')}"


class KubernetesSettings(BaseSettings):
    """Kubernetes API access used for policy lookups and health checks."""

    model_config = SettingsConfigDict(env_prefix="KUBERNETES_")

    api_server: str = "https://kubernetes.default.svc"
    token: str | None = None
    token_file: Path | None = Path("/var/run/secrets/kubernetes.io/serviceaccount/token")
    ca_cert_path: Path | None = None
    verify_ssl: bool = True
    timeout_seconds: float = Field(default=10.0, ge=0.1, le=120.0)

    # Namespace used for namespaced policy kinds reported without one
    default_namespace: str = "default"

    # Location of the flow backend service
    whisker_namespace: str = "calico-system"
    whisker_service: str = "whisker"
    whisker_port: int = Field(default=8081, ge=1, le=65535)


class AnalysisSettings(BaseSettings):
    """Blocked-flow analysis configuration."""

    model_config = SettingsConfigDict(env_prefix="ANALYSIS_")

    max_concurrent_lookups: int = Field(default=16, ge=1, le=256)
    max_trigger_depth: int = Field(default=16, ge=1, le=256)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    include_timestamp: bool = True
    include_caller: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application info
    app_name: str = "PolicyLens"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"

    # Sub-configurations
    whisker: WhiskerSettings = Field(default_factory=WhiskerSettings)
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()


def load_settings() -> Settings:
    """Load settings, converting validation failures to ConfigurationError.

    Raises:
        ConfigurationError: If an environment value or .env entry is invalid.
    """
    try:
        return get_settings()
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            details={
                "errors": [
                    {
                        "field": ".".join(str(part) for part in err["loc"]),
                        "message": err["msg"],
                    }
                    for err in e.errors()
                ],
            },
            cause=e,
        ) from e
