"""Timing configuration settings.

This module provides the TimingConfig class and settings singleton. The
configuration describes how request fields are turned into record labels and
annotations, which status codes failures map to, and where completion records
are reported.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from phase_timing.config.env_loader import Environment, get_environment, load_env_files
from phase_timing.config.validators import (
    resolve_path,
    validate_log_format,
    validate_log_level,
    validate_status_code,
)
from phase_timing.telemetry import get_logger

log = get_logger(__name__)


class TimingConfig(BaseSettings):
    """Unified phase timing configuration.

    Loads configuration from environment variables, .env files, and defaults.
    Validates all values using Pydantic.
    """

    model_config = SettingsConfigDict(
        # .env files are loaded manually via env_loader to support
        # environment-specific files with priority order
        env_prefix="PHASE_TIMING_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )

    # Telemetry (read by telemetry.configure_logging)
    log_dir: Path = Field(default=Path("logs"), description="Directory for current.jsonl")
    log_level: str = Field(
        default="INFO",
        alias="APP_LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="console",
        alias="APP_LOG_FORMAT",
        description="Console log format (console or json); the file is always JSON",
    )

    # Status mapping
    success_status: int = Field(
        default=200, description="Status used when a handler result carries none"
    )
    failure_status: int = Field(
        default=500, description="Synthetic status recorded when the handler raises"
    )
    exception_statuses: dict[str, int] = Field(
        default_factory=dict,
        description=(
            "Exception class name -> status overrides, looked up along the MRO "
            '(e.g. {"TimeoutError": 504})'
        ),
    )

    # Request field extraction
    label_fields: list[str] = Field(
        default_factory=lambda: ["method", "path"],
        description="Request fields joined into the record label",
    )
    label_separator: str = Field(default=" ", description="Separator between label fields")
    default_label: str = Field(
        default="unknown", description="Label used when no label field is present"
    )
    annotation_fields: list[str] = Field(
        default_factory=lambda: ["method", "path", "format"],
        description="Request fields copied into record annotations",
    )
    request_id_field: str = Field(
        default="request_id", description="Request field holding an upstream request id"
    )
    request_id_header: str = Field(
        default="x-request-id", description="HTTP header read by the ASGI middleware"
    )

    # Error policy
    strict_instrumentation: bool | None = Field(
        default=None,
        description=(
            "Raise on invalid phase durations reported by instrumentation hooks. "
            "None means strict everywhere except production."
        ),
    )
    raise_on_report_failure: bool = Field(
        default=False,
        description="Raise ReportingError after a successful request whose record a sink rejected",
    )

    # Reporting
    report_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Upper bound for asynchronous sink deliveries"
    )
    server_timing_header: bool = Field(
        default=True, description="Add a Server-Timing header in the ASGI middleware"
    )

    # Elasticsearch
    elasticsearch_enabled: bool = Field(
        default=False, description="Index completion records into Elasticsearch"
    )
    elasticsearch_url: str = Field(default="http://localhost:9200", description="Elasticsearch URL")
    elasticsearch_index_prefix: str = Field(
        default="request-timing", description="Elasticsearch index prefix"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator("log_dir", mode="before")
    @classmethod
    def resolve_paths(cls, v: Path | str) -> Path:
        """Resolve relative paths to absolute."""
        return resolve_path(v)

    @field_validator("success_status", "failure_status")
    @classmethod
    def validate_status(cls, v: int) -> int:
        """Validate status codes."""
        return validate_status_code(v)

    @field_validator("exception_statuses")
    @classmethod
    def validate_exception_statuses(cls, v: dict[str, int]) -> dict[str, int]:
        """Validate every mapped status code."""
        for status in v.values():
            validate_status_code(status)
        return v

    def is_strict(self) -> bool:
        """Whether instrumentation hooks should raise on invalid durations.

        Returns:
            The explicit setting, or True outside production when unset.
        """
        if self.strict_instrumentation is not None:
            return self.strict_instrumentation
        return self.environment != Environment.PRODUCTION


_settings: TimingConfig | None = None


def load_app_config() -> TimingConfig:
    """Load and validate timing configuration.

    This function:
    1. Loads .env files in priority order (via env_loader)
    2. Creates TimingConfig instance (reads from environment variables)
    3. Validates all values using Pydantic
    4. Logs configuration loading using structlog

    Returns:
        Validated TimingConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_app_config", environment=get_environment().value)

    load_env_files()

    try:
        config = TimingConfig()
        log.info(
            "app_config_loaded",
            environment=config.environment.value,
            log_level=config.log_level,
            failure_status=config.failure_status,
            elasticsearch_enabled=config.elasticsearch_enabled,
        )
        return config
    except Exception as e:
        log.error("app_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise


def get_settings() -> TimingConfig:
    """Get the timing settings singleton.

    Returns:
        TimingConfig instance (singleton pattern).
    """
    global _settings
    if _settings is None:
        _settings = load_app_config()
    return _settings


def reset_settings() -> None:
    """Drop the cached singleton so the next get_settings() reloads."""
    global _settings
    _settings = None
