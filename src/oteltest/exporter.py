"""OTel SpanExporter that appends OTLP JSON lines to a file.

Writes the same newline-delimited ``TracesData`` shape the collector's file
exporter produces, so a test can record its own trace without a collector
and the result can be verified with the same reader and comparator. Each
``export`` call writes one line. Never raises exceptions to user code.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from pathlib import Path
from typing import Any, Sequence

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

logger = logging.getLogger("oteltest.exporter")


def _otlp_value(value: Any) -> dict[str, Any]:
    """Convert an attribute value to an OTLP ``AnyValue`` dict."""
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [_otlp_value(v) for v in value]}}
    return {"stringValue": str(value)}


def _otlp_attributes(attributes: Any) -> list[dict[str, Any]]:
    if not attributes:
        return []
    return [{"key": key, "value": _otlp_value(value)} for key, value in attributes.items()]


def _span_to_otlp_dict(span: ReadableSpan) -> dict[str, Any]:
    """Convert an OTel ReadableSpan to OTLP-compatible JSON dict."""
    context = span.get_span_context()
    trace_id = format(context.trace_id, "032x") if context else ""
    span_id = format(context.span_id, "016x") if context else ""
    parent_id = format(span.parent.span_id, "016x") if span.parent else ""

    return {
        "traceId": trace_id,
        "spanId": span_id,
        "parentSpanId": parent_id,
        "name": span.name,
        "kind": span.kind.value + 1,  # OTLP enum is offset by SPAN_KIND_UNSPECIFIED
        "startTimeUnixNano": str(span.start_time or 0),
        "endTimeUnixNano": str(span.end_time or 0),
        "attributes": _otlp_attributes(span.attributes),
        "events": [
            {
                "timeUnixNano": str(event.timestamp),
                "name": event.name,
                "attributes": _otlp_attributes(event.attributes),
            }
            for event in span.events
        ],
        "status": {
            "code": span.status.status_code.value,
            "message": span.status.description or "",
        },
    }


def spans_to_traces_data(spans: Sequence[ReadableSpan]) -> dict[str, Any]:
    """Group spans by resource and instrumentation scope into one ``TracesData``."""
    resources: dict[int, Any] = {}
    grouped: defaultdict[int, defaultdict[tuple[str, str], list[dict[str, Any]]]] = (
        defaultdict(lambda: defaultdict(list))
    )

    for span in spans:
        resource_key = id(span.resource)
        resources[resource_key] = span.resource
        scope = span.instrumentation_scope
        scope_key = (scope.name, scope.version or "") if scope else ("", "")
        grouped[resource_key][scope_key].append(_span_to_otlp_dict(span))

    resource_spans = []
    for resource_key, scopes in grouped.items():
        resource = resources[resource_key]
        resource_spans.append(
            {
                "resource": {
                    "attributes": _otlp_attributes(resource.attributes if resource else {})
                },
                "scopeSpans": [
                    {
                        "scope": {"name": name, "version": version},
                        "spans": otlp_spans,
                    }
                    for (name, version), otlp_spans in scopes.items()
                ],
            }
        )
    return {"resourceSpans": resource_spans}


class FileSpanExporter(SpanExporter):
    """Exports spans as OTLP JSON lines appended to ``path``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._shutdown = False

    @property
    def path(self) -> Path:
        return self._path

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Append one line for this batch. Never raises."""
        if self._shutdown:
            logger.debug("Export after shutdown ignored")
            return SpanExportResult.FAILURE
        if not spans:
            return SpanExportResult.SUCCESS

        try:
            line = json.dumps(spans_to_traces_data(spans), separators=(",", ":"))
            with self._lock:
                with self._path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except Exception:
            logger.debug("Error writing spans to %s", self._path, exc_info=True)
            return SpanExportResult.FAILURE

        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        self._shutdown = True

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        """Every export is written synchronously, so there is nothing buffered."""
        return True
