"""oteltest: OpenTelemetry harness for test bodies.

Public API::

    import oteltest

    @oteltest.otel_test  # pipeline per test, spans flushed even on failure
    async def test_add():
        assert add(10, 20) == 30

    @oteltest.instrument  # one span per call, errors recorded
    def add(a, b): ...

    mismatches = oteltest.compare_files("result/test_add.json", "expected/test_add.json")
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from typing import Any, Callable

from oteltest.compare import Mismatch, TraceComparator, compare_files, compare_traces
from oteltest.config import Settings
from oteltest.content import TraceContent
from oteltest.errors import (
    ComparisonMismatchError,
    ExportTimeoutError,
    InitializationError,
    MalformedExportError,
    OtelTestError,
    TestFailure,
)
from oteltest.exporter import FileSpanExporter
from oteltest.instrument import instrument
from oteltest.outcome import OutcomeKind, TestOutcome
from oteltest.propagation import PropagationContext
from oteltest.reader import TraceExportReader, read_export, wait_for_export
from oteltest.runner import InstrumentedTestRunner
from oteltest.telemetry import GuardState, TelemetryGuard, TelemetryLifecycleManager

logger = logging.getLogger("oteltest")

__all__ = [
    "ComparisonMismatchError",
    "ExportTimeoutError",
    "FileSpanExporter",
    "GuardState",
    "InitializationError",
    "InstrumentedTestRunner",
    "MalformedExportError",
    "Mismatch",
    "OtelTestError",
    "OutcomeKind",
    "PropagationContext",
    "Settings",
    "TelemetryGuard",
    "TelemetryLifecycleManager",
    "TestFailure",
    "TestOutcome",
    "TraceComparator",
    "TraceContent",
    "TraceExportReader",
    "compare_files",
    "compare_traces",
    "instrument",
    "otel_test",
    "read_export",
    "wait_for_export",
]


def otel_test(
    func: Callable[..., Any] | None = None,
    *,
    endpoint: str | None = None,
    version: str | None = None,
    manager: TelemetryLifecycleManager | None = None,
) -> Any:
    """Run the decorated test inside its own tracing pipeline.

    The test function name is used as both the service name and the root span
    name. Failures are exported first and then re-raised as ``TestFailure``,
    so the host framework still reports the test as failed.

    Works on sync and ``async def`` tests; pytest fixtures are passed through.
    Async tests still need the framework's asyncio marker.
    """

    def decorate(f: Callable[..., Any]) -> Callable[..., Any]:
        def _runner() -> InstrumentedTestRunner:
            return InstrumentedTestRunner(
                manager, endpoint=endpoint, service_name=f.__name__, version=version
            )

        if inspect.iscoroutinefunction(f):

            @functools.wraps(f)
            async def async_wrapper(*args: Any, **kwargs: Any) -> None:
                await _runner().execute(functools.partial(f, *args, **kwargs), f.__name__)

            return async_wrapper

        @functools.wraps(f)
        def wrapper(*args: Any, **kwargs: Any) -> None:
            asyncio.run(_runner().execute(functools.partial(f, *args, **kwargs), f.__name__))

        return wrapper

    if func is not None:
        return decorate(func)
    return decorate
