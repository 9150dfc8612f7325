"""Configuration management for oteltest."""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Harness settings loaded from environment variables.

    All settings can be overridden via environment variables with the OTELTEST_ prefix.
    For example, OTELTEST_ENDPOINT, OTELTEST_FLUSH_INTERVAL_SECONDS, etc.
    """

    # Pipeline settings
    endpoint: str = Field(
        default="localhost:4317",
        description="Collector address the OTLP exporter sends spans to",
    )
    protocol: Literal["grpc", "http/protobuf"] = Field(
        default="grpc",
        description="OTLP transport; port 4317 speaks grpc, 4318 speaks http/protobuf",
    )
    insecure: bool = Field(
        default=True,
        description="Use a plaintext grpc channel (disposable local collectors have no TLS)",
    )
    service_name: str = Field(
        default="oteltest",
        min_length=1,
        description="Default service.name resource attribute",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Default service.version resource attribute",
    )
    deployment_environment: str = Field(
        default="unknown",
        validation_alias=AliasChoices(
            "OTELTEST_DEPLOYMENT_ENVIRONMENT", "DEPLOYMENT_ENVIRONMENT"
        ),
        description="deployment.environment resource attribute",
    )
    span_processor: Literal["batch", "simple"] = Field(
        default="batch",
        description="Span processor placed in front of the exporter",
    )
    sample_ratio: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="TraceIdRatioBased sampling ratio (parent-based)",
    )

    # Flush settings
    flush_interval_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Grace period after the body finishes before flushing",
    )
    flush_timeout_millis: int = Field(
        default=5_000,
        ge=1,
        le=300_000,
        description="Timeout for a single force_flush attempt",
    )
    flush_retries: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum force_flush attempts before giving up",
    )

    # Trace file layout
    result_dir: str = Field(
        default="result",
        description="Directory holding actual exports (<test_name>.json)",
    )
    expected_dir: str = Field(
        default="expected",
        description="Directory holding reference exports (<test_name>.json)",
    )

    # Collector container settings
    collector_image: str = Field(
        default="otel/opentelemetry-collector-contrib:0.103.1",
        description="Collector image started for integration scenarios",
    )
    collector_config_path: str = Field(
        default="otel-collector-config.yaml",
        description="Collector configuration file bind-mounted into the container",
    )
    collector_startup_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=600.0,
        description="Seconds to wait for the collector health endpoint",
    )

    model_config = {"env_prefix": "OTELTEST_", "populate_by_name": True}
