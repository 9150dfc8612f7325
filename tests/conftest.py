"""Shared test fixtures for oteltest."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, SpanExportResult
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from oteltest.config import Settings
from oteltest.exporter import FileSpanExporter
from oteltest.telemetry import TelemetryLifecycleManager

# Single global provider for the entire test session.
# OTel only allows set_tracer_provider once per process, so the harness sees
# it as already registered and every test gets its own pipeline instead.
_global_exporter = InMemorySpanExporter()
_global_provider = TracerProvider()
_global_provider.add_span_processor(SimpleSpanProcessor(_global_exporter))
trace.set_tracer_provider(_global_provider)


class CountingExporter(InMemorySpanExporter):
    """In-memory exporter that records how often it was shut down."""

    def __init__(self) -> None:
        super().__init__()
        self.shutdown_calls = 0
        self.export_calls = 0

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        self.export_calls += 1
        return super().export(spans)

    def shutdown(self) -> None:
        self.shutdown_calls += 1
        super().shutdown()


@pytest.fixture()
def settings() -> Settings:
    """Fast settings: no grace period, synchronous export."""
    return Settings(
        flush_interval_seconds=0.0,
        span_processor="simple",
        flush_retries=1,
        flush_timeout_millis=1_000,
    )


@pytest.fixture()
def memory_exporter() -> CountingExporter:
    return CountingExporter()


@pytest.fixture()
def manager(settings: Settings, memory_exporter: CountingExporter) -> TelemetryLifecycleManager:
    """Manager whose pipelines all export to ``memory_exporter``."""
    return TelemetryLifecycleManager(settings, exporter_factory=lambda endpoint: memory_exporter)


@pytest.fixture()
def export_path(tmp_path: Path) -> Path:
    return tmp_path / "result" / "trace.json"


@pytest.fixture()
def file_manager(settings: Settings, export_path: Path) -> TelemetryLifecycleManager:
    """Manager whose pipelines append OTLP JSON lines to ``export_path``."""
    export_path.parent.mkdir(parents=True, exist_ok=True)
    return TelemetryLifecycleManager(
        settings, exporter_factory=lambda endpoint: FileSpanExporter(export_path)
    )
