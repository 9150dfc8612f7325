"""Runs a test body inside a tracing pipeline without losing its spans.

The body runs as a separate unit of work (an asyncio task, plus a worker
thread for sync bodies) whose own span is closed before the runner looks at
the result. Failures come back as a typed ``BodyResult`` from the join rather
than unwinding through the frame that owns the pipeline, so the span is
always ended and exported. After every body, success or not, the runner
waits the flush interval and force-flushes before the guard is released.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from oteltest.context import use_tracer
from oteltest.models import EXCEPTION_MESSAGE
from oteltest.outcome import BodyResult, TestOutcome, describe_exception
from oteltest.telemetry import TelemetryGuard, TelemetryLifecycleManager

logger = logging.getLogger(__name__)

Body = Callable[[], Any]

_DEFAULT_BODY_NAME = "test_body"


class InstrumentedTestRunner:
    """Wraps test bodies with an acquire / run / flush / release protocol."""

    def __init__(
        self,
        manager: TelemetryLifecycleManager | None = None,
        *,
        endpoint: str | None = None,
        service_name: str | None = None,
        version: str | None = None,
        flush_interval_seconds: float | None = None,
    ) -> None:
        """
        Args:
            manager: Pipeline factory. A default one reads settings from the environment.
            endpoint: Collector endpoint override.
            service_name: service.name override. Defaults to the body name.
            version: service.version override.
            flush_interval_seconds: Grace period before each flush. Defaults to
                ``settings.flush_interval_seconds``.
        """
        self._manager = manager or TelemetryLifecycleManager()
        self._endpoint = endpoint
        self._service_name = service_name
        self._version = version
        if flush_interval_seconds is None:
            flush_interval_seconds = self._manager.settings.flush_interval_seconds
        self._flush_interval = flush_interval_seconds

    async def run(self, body: Body, name: str | None = None) -> TestOutcome:
        """Run ``body`` and return its outcome. Never raises for body failures.

        Raises:
            InitializationError: If the pipeline cannot be built; the body does not run.
        """
        name = name or getattr(body, "__name__", None) or _DEFAULT_BODY_NAME
        service_name = self._service_name or name

        async with self._manager.acquire(self._endpoint, service_name, self._version) as guard:
            with use_tracer(guard.tracer, name):
                task = asyncio.create_task(
                    _run_isolated(body, guard.tracer, name), name=f"oteltest:{name}"
                )
                result = await task

            await self._flush(guard)

            outcome = result.to_outcome()
            if outcome.failed:
                await asyncio.to_thread(guard.report_failure, outcome.message, outcome.error)
                await self._flush(guard)

        logger.debug("Test %s finished: %s", name, outcome.kind.value)
        return outcome

    async def execute(self, body: Body, name: str | None = None) -> TestOutcome:
        """Run ``body`` and re-signal failure to the host framework.

        Raises:
            TestFailure: If the body returned an error value or terminated abnormally.
        """
        outcome = await self.run(body, name)
        outcome.raise_for_failure()
        return outcome

    async def _flush(self, guard: TelemetryGuard) -> bool:
        if self._flush_interval > 0:
            await asyncio.sleep(self._flush_interval)
        return await asyncio.to_thread(guard.flush)


async def _run_isolated(body: Body, tracer: trace.Tracer, name: str) -> BodyResult:
    """Run ``body`` inside its own span and convert how it ended into a ``BodyResult``."""
    try:
        with tracer.start_as_current_span(name) as span:
            if inspect.iscoroutinefunction(body):
                value = await body()
            else:
                value = await asyncio.to_thread(body)
                if inspect.isawaitable(value):
                    value = await value

            if isinstance(value, BaseException):
                message = describe_exception(value)
                span.record_exception(value, attributes={EXCEPTION_MESSAGE: message})
                span.set_status(Status(StatusCode.ERROR, message))
                return BodyResult.err(value)
    except (KeyboardInterrupt, asyncio.CancelledError):
        raise
    except BaseException as exc:  # assertion failures, pytest.fail(), sys.exit() and the like
        return BodyResult.aborted(exc)

    return BodyResult.ok(value)
