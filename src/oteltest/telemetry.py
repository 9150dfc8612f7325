"""Tracing pipeline lifecycle.

``TelemetryLifecycleManager.init`` builds a tracer provider bound to a service
name and a collector endpoint and returns a ``TelemetryGuard``. The guard is
the explicit handle to that pipeline: code that needs a tracer gets it from
the guard (or from ``oteltest.context`` while a test runs), never from the
global provider.

The only process-wide state is the global tracer provider registration and
the hooks installed with it: excepthooks that report abnormal termination,
and a root logger handler that records log messages as span events. OTel
only allows ``set_tracer_provider`` once per process, so the first ``init``
installs all of this and later calls skip that step. A lock makes the
first-time installation safe when several bodies race to initialise.

Releasing a guard is synchronous: it force-flushes with a timeout and bounded
retry, then shuts the provider down, and only then counts as released.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import sys
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.id_generator import RandomIdGenerator
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from oteltest.config import Settings
from oteltest.errors import InitializationError
from oteltest.models import EXCEPTION_MESSAGE
from oteltest.outcome import describe_exception

logger = logging.getLogger(__name__)

TRACER_NAME = "oteltest"
ABNORMAL_SPAN_NAME = "abnormal_termination"
LOG_LEVEL_ATTRIBUTE = "level"
LOG_TARGET_ATTRIBUTE = "target"

ExporterFactory = Callable[[str], SpanExporter]

_global_lock = threading.Lock()
_global_installed = False
_active_guards: list[TelemetryGuard] = []


class GuardState(str, enum.Enum):
    ACTIVE = "active"
    RELEASING = "releasing"
    RELEASED = "released"


class TelemetryGuard:
    """Scoped handle over one tracer provider. Released exactly once."""

    def __init__(
        self,
        provider: TracerProvider,
        service_name: str,
        settings: Settings,
        propagator: TraceContextTextMapPropagator,
    ) -> None:
        self._provider = provider
        self._service_name = service_name
        self._settings = settings
        self._propagator = propagator
        self._tracer = provider.get_tracer(TRACER_NAME, settings.service_version)
        self._lock = threading.Lock()
        self._release_started = False
        self._state = GuardState.ACTIVE

    @property
    def tracer(self) -> trace.Tracer:
        return self._tracer

    @property
    def provider(self) -> TracerProvider:
        return self._provider

    @property
    def propagator(self) -> TraceContextTextMapPropagator:
        return self._propagator

    @property
    def service_name(self) -> str:
        return self._service_name

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def released(self) -> bool:
        """True once flush and shutdown have finished.

        While another caller is still inside ``release`` the state is ``RELEASING``
        and this is False, even though a second ``release`` already returns False.
        """
        return self._state is GuardState.RELEASED

    def flush(self, timeout_millis: int | None = None, retries: int | None = None) -> bool:
        """Force-flush buffered spans, retrying up to ``retries`` times.

        Returns True once a flush attempt completes within the timeout.
        """
        if timeout_millis is None:
            timeout_millis = self._settings.flush_timeout_millis
        if retries is None:
            retries = self._settings.flush_retries

        for attempt in range(1, retries + 1):
            try:
                if self._provider.force_flush(timeout_millis):
                    return True
            except Exception:
                logger.debug("Flush attempt %d raised", attempt, exc_info=True)
            logger.debug("Flush attempt %d/%d did not complete", attempt, retries)

        logger.warning(
            "Spans for %s not flushed after %d attempts", self._service_name, retries
        )
        return False

    def report_failure(self, message: str, exc: BaseException | None = None) -> None:
        """Export a failure as an error-status span carrying an exception event."""
        logger.error("%s: %s", self._service_name, message)
        with self._tracer.start_as_current_span(
            ABNORMAL_SPAN_NAME,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            if exc is not None:
                span.record_exception(exc, attributes={EXCEPTION_MESSAGE: message})
            else:
                span.add_event("exception", {EXCEPTION_MESSAGE: message})
            span.set_status(Status(StatusCode.ERROR, message))

    def release(self) -> bool:
        """Flush and shut the pipeline down.

        Returns False (and does nothing) if the guard was already released.
        """
        with self._lock:
            if self._release_started:
                logger.debug("Telemetry guard for %s already released", self._service_name)
                return False
            self._release_started = True
            self._state = GuardState.RELEASING

        _unregister_active(self)
        self.flush()
        try:
            self._provider.shutdown()
        except Exception:
            logger.warning(
                "Tracer provider shutdown failed for %s", self._service_name, exc_info=True
            )
        self._state = GuardState.RELEASED
        logger.debug("Telemetry guard for %s released", self._service_name)
        return True

    async def arelease(self) -> bool:
        """``release`` without blocking the event loop."""
        return await asyncio.to_thread(self.release)

    def __enter__(self) -> TelemetryGuard:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    async def __aenter__(self) -> TelemetryGuard:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.arelease()


class TelemetryLifecycleManager:
    """Builds tracing pipelines and hands out guards for them."""

    def __init__(
        self,
        settings: Settings | None = None,
        exporter_factory: ExporterFactory | None = None,
    ) -> None:
        """
        Args:
            settings: Harness settings. Loaded from the environment if omitted.
            exporter_factory: Called with the endpoint to build the span
                exporter. Defaults to an OTLP exporter for ``settings.protocol``.
        """
        self._settings = settings or Settings()
        self._exporter_factory = exporter_factory

    @property
    def settings(self) -> Settings:
        return self._settings

    def init(
        self,
        endpoint: str | None = None,
        service_name: str | None = None,
        version: str | None = None,
    ) -> TelemetryGuard:
        """Build a pipeline and return its guard.

        Raises:
            InitializationError: If the exporter or provider cannot be built.
        """
        endpoint = endpoint or self._settings.endpoint
        service_name = service_name or self._settings.service_name
        version = version or self._settings.service_version

        propagator = TraceContextTextMapPropagator()
        set_global_textmap(propagator)

        try:
            exporter = self._build_exporter(endpoint)
            provider = TracerProvider(
                resource=Resource.create(
                    {
                        SERVICE_NAME: service_name,
                        SERVICE_VERSION: version,
                        DEPLOYMENT_ENVIRONMENT: self._settings.deployment_environment,
                    }
                ),
                sampler=ParentBased(TraceIdRatioBased(self._settings.sample_ratio)),
                id_generator=RandomIdGenerator(),
            )
            provider.add_span_processor(self._build_processor(exporter))
        except Exception as e:
            raise InitializationError(
                f"Failed to build tracing pipeline for {service_name} -> {endpoint}: {e}"
            ) from e

        guard = TelemetryGuard(provider, service_name, self._settings, propagator)
        _install_global(provider)
        _register_active(guard)
        logger.debug("Tracing pipeline for %s exporting to %s", service_name, endpoint)
        return guard

    @asynccontextmanager
    async def acquire(
        self,
        endpoint: str | None = None,
        service_name: str | None = None,
        version: str | None = None,
    ) -> AsyncIterator[TelemetryGuard]:
        """Yield a guard that is released on every exit path."""
        guard = self.init(endpoint, service_name, version)
        try:
            yield guard
        finally:
            await guard.arelease()

    def _build_exporter(self, endpoint: str) -> SpanExporter:
        if self._exporter_factory is not None:
            return self._exporter_factory(endpoint)

        if self._settings.protocol == "grpc":
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )

            return OTLPSpanExporter(endpoint=endpoint, insecure=self._settings.insecure)

        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HTTPSpanExporter,
        )

        return HTTPSpanExporter(endpoint=http_traces_url(endpoint))

    def _build_processor(self, exporter: SpanExporter) -> SpanProcessor:
        if self._settings.span_processor == "simple":
            return SimpleSpanProcessor(exporter)
        return BatchSpanProcessor(exporter)


def http_traces_url(endpoint: str) -> str:
    """Turn ``host:port`` or a base URL into the OTLP/HTTP traces URL."""
    url = endpoint if "://" in endpoint else f"http://{endpoint}"
    url = url.rstrip("/")
    if not url.endswith("/v1/traces"):
        url = f"{url}/v1/traces"
    return url


def global_registration_done() -> bool:
    return _global_installed


def _install_global(provider: TracerProvider) -> bool:
    """Register the global provider and hooks on the first call only."""
    global _global_installed

    with _global_lock:
        if _global_installed:
            return False
        _global_installed = True

        if isinstance(trace.get_tracer_provider(), trace.ProxyTracerProvider):
            trace.set_tracer_provider(provider)
        else:
            logger.info("Tracer provider is already set.")
        _install_excepthooks()
        _install_log_bridge()
        return True


def _register_active(guard: TelemetryGuard) -> None:
    with _global_lock:
        _active_guards.append(guard)


def _unregister_active(guard: TelemetryGuard) -> None:
    with _global_lock:
        if guard in _active_guards:
            _active_guards.remove(guard)


def _latest_active_guard() -> TelemetryGuard | None:
    with _global_lock:
        return _active_guards[-1] if _active_guards else None


def _report_abnormal(exc: BaseException) -> None:
    guard = _latest_active_guard()
    if guard is None:
        return
    try:
        guard.report_failure(f"abnormal termination: {describe_exception(exc)}", exc)
        guard.flush()
    except Exception:
        logger.debug("Failed to export abnormal termination", exc_info=True)


def _install_excepthooks() -> None:
    previous_excepthook = sys.excepthook
    previous_threading_excepthook = threading.excepthook

    def _excepthook(exc_type, exc, tb):
        _report_abnormal(exc)
        previous_excepthook(exc_type, exc, tb)

    def _threading_excepthook(args):
        if args.exc_value is not None:
            _report_abnormal(args.exc_value)
        previous_threading_excepthook(args)

    sys.excepthook = _excepthook
    threading.excepthook = _threading_excepthook


class SpanEventHandler(logging.Handler):
    """Records log messages as events on the span current in the emitting context.

    The event is named after the formatted message and carries ``level`` and
    ``target`` (the logger name) attributes. Records emitted outside a
    recording span are dropped, as are the harness's own records.
    """

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == TRACER_NAME or record.name.startswith(f"{TRACER_NAME}."):
            return
        span = trace.get_current_span()
        if not span.is_recording():
            return
        try:
            span.add_event(
                record.getMessage(),
                {LOG_LEVEL_ATTRIBUTE: record.levelname, LOG_TARGET_ATTRIBUTE: record.name},
            )
        except Exception:
            self.handleError(record)


def _install_log_bridge() -> None:
    logging.getLogger().addHandler(SpanEventHandler())
