"""Tests for oteltest.propagation.PropagationContext."""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from oteltest.propagation import PropagationContext
from oteltest.telemetry import TelemetryLifecycleManager


class TestPropagationContext:
    def test_inject_extract_round_trip(self, manager: TelemetryLifecycleManager) -> None:
        with manager.init() as guard:
            with guard.tracer.start_as_current_span("parent") as span:
                carrier = PropagationContext.inject(propagator=guard.propagator)

            extracted = carrier.extract(propagator=guard.propagator)

        remote = trace.get_current_span(extracted).get_span_context()
        assert remote.is_remote
        assert remote.trace_id == span.get_span_context().trace_id
        assert remote.span_id == span.get_span_context().span_id

    def test_uses_global_propagator_by_default(
        self, manager: TelemetryLifecycleManager
    ) -> None:
        with manager.init() as guard:
            with guard.tracer.start_as_current_span("parent"):
                carrier = PropagationContext.inject()

        assert "traceparent" in carrier.keys()

    def test_serializes_to_json_object(self) -> None:
        carrier = PropagationContext({"traceparent": "00-abc-def-01", "tracestate": "k=v"})

        restored = PropagationContext.model_validate_json(carrier.model_dump_json())

        assert restored.root == carrier.root
        assert restored.model_dump() == {"traceparent": "00-abc-def-01", "tracestate": "k=v"}

    def test_keeps_every_given_key(self) -> None:
        carrier = PropagationContext()
        carrier.set("traceparent", "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01")
        carrier.set("custom", "value")

        restored = PropagationContext.model_validate_json(carrier.model_dump_json())

        assert restored.get("custom") == "value"
        assert len(restored) == 2

    def test_extract_from_empty_carrier_has_no_span(self) -> None:
        context = PropagationContext().extract(propagator=TraceContextTextMapPropagator())

        assert not trace.get_current_span(context).get_span_context().is_valid
