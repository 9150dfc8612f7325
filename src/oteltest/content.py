"""Semantic view over exported trace data.

``TraceContent`` exposes the projections the comparator checks. Every
projection is sorted so results do not depend on the physical order of lines
in the export file, and nothing is cached: each call recomputes from the
underlying resource spans.
"""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Iterable, Iterator

from oteltest.models import ResourceSpans, Span, TracesData
from oteltest.reader import read_export


class TraceContent:
    """Immutable wrapper over a sequence of ``ResourceSpans``."""

    __slots__ = ("_resource_spans",)

    def __init__(self, resource_spans: Iterable[ResourceSpans]) -> None:
        object.__setattr__(self, "_resource_spans", tuple(resource_spans))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("TraceContent is immutable")

    @classmethod
    def from_records(cls, records: Iterable[TracesData]) -> TraceContent:
        return cls(rs for record in records for rs in record.resourceSpans)

    @classmethod
    def from_file(cls, path: str | Path, *, strict: bool = False) -> TraceContent:
        return cls.from_records(read_export(path, strict=strict))

    @property
    def resource_spans(self) -> tuple[ResourceSpans, ...]:
        return self._resource_spans

    def _iter_spans(self) -> Iterator[Span]:
        for resource_spans in self._resource_spans:
            yield from resource_spans.iter_spans()

    def service_names(self) -> list[str]:
        return sorted(rs.service_name for rs in self._resource_spans)

    def span_names(self) -> list[str]:
        return sorted(span.name for span in self._iter_spans())

    def span_count(self) -> int:
        """Number of scope-span groups across all resource spans.

        This counts scopes, not individual spans (see ``total_span_count``).
        """
        return sum(len(rs.scopeSpans) for rs in self._resource_spans)

    def total_span_count(self) -> int:
        return sum(1 for _ in self._iter_spans())

    def status_count(self, code: int) -> int:
        return sum(1 for span in self._iter_spans() if span.status_code == code)

    def span_event_names(self) -> dict[str, list[str]]:
        """Span name -> sorted event names. Spans sharing a name are merged."""
        merged: defaultdict[str, list[str]] = defaultdict(list)
        for span in self._iter_spans():
            merged[span.name].extend(event.name for event in span.events)
        return {name: sorted(events) for name, events in merged.items()}

    def span_event_exceptions(self) -> dict[str, list[str]]:
        """Span name -> sorted ``exception.message`` of each event ("" if absent)."""
        merged: defaultdict[str, list[str]] = defaultdict(list)
        for span in self._iter_spans():
            merged[span.name].extend(event.exception_message for event in span.events)
        return {name: sorted(messages) for name, messages in merged.items()}

    def __repr__(self) -> str:
        return f"TraceContent(resource_spans={len(self._resource_spans)})"
