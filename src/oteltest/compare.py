"""Projection-level diff between an actual and an expected trace.

Raw structural equality is not attempted: trace/span IDs, timestamps and
parent links change on every run. Only order-independent projections that
carry meaning across runs are compared.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

from oteltest.content import TraceContent
from oteltest.errors import ComparisonMismatchError
from oteltest.models import STATUS_ERROR

logger = logging.getLogger(__name__)


class Mismatch(BaseModel):
    """One projection on which actual and expected disagree."""

    model_config = ConfigDict(frozen=True)

    field: str
    actual_value: Any
    expected_value: Any
    key: str | None = None  # span name, for mapping projections

    def __str__(self) -> str:
        where = self.field if self.key is None else f"{self.field}[{self.key!r}]"
        return f"{where}: actual={self.actual_value!r} expected={self.expected_value!r}"


def _scalar(field: str, actual: Any, expected: Any) -> list[Mismatch]:
    if actual == expected:
        return []
    return [Mismatch(field=field, actual_value=actual, expected_value=expected)]


def _mapping(
    field: str,
    actual: dict[str, list[str]],
    expected: dict[str, list[str]],
) -> list[Mismatch]:
    """One mismatch per span name whose values differ or exist on one side only."""
    mismatches = []
    for key in sorted(actual.keys() | expected.keys()):
        a = actual.get(key)
        e = expected.get(key)
        if a != e:
            mismatches.append(Mismatch(field=field, key=key, actual_value=a, expected_value=e))
    return mismatches


class TraceComparator:
    """Runs every projection check and collects all mismatches."""

    def __init__(self, error_code: int = STATUS_ERROR) -> None:
        self._error_code = error_code
        self._checks: list[Callable[[TraceContent, TraceContent], list[Mismatch]]] = [
            lambda a, e: _scalar("span_names", a.span_names(), e.span_names()),
            lambda a, e: _scalar("span_count", a.span_count(), e.span_count()),
            lambda a, e: _scalar(
                "status_count",
                a.status_count(self._error_code),
                e.status_count(self._error_code),
            ),
            lambda a, e: _mapping(
                "span_event_names", a.span_event_names(), e.span_event_names()
            ),
            lambda a, e: _mapping(
                "span_event_exceptions",
                a.span_event_exceptions(),
                e.span_event_exceptions(),
            ),
        ]

    def compare(self, actual: TraceContent, expected: TraceContent) -> list[Mismatch]:
        mismatches: list[Mismatch] = []
        for check in self._checks:
            mismatches.extend(check(actual, expected))
        for mismatch in mismatches:
            logger.info("Trace mismatch: %s", mismatch)
        return mismatches

    def assert_match(self, actual: TraceContent, expected: TraceContent) -> None:
        """Raise ``ComparisonMismatchError`` listing every divergent projection."""
        mismatches = self.compare(actual, expected)
        if mismatches:
            raise ComparisonMismatchError(mismatches)


def compare_traces(actual: TraceContent, expected: TraceContent) -> list[Mismatch]:
    return TraceComparator().compare(actual, expected)


def compare_files(
    actual_path: str | Path,
    expected_path: str | Path,
    *,
    strict: bool = False,
) -> list[Mismatch]:
    """Read both export files and compare them."""
    return compare_traces(
        TraceContent.from_file(actual_path, strict=strict),
        TraceContent.from_file(expected_path, strict=strict),
    )
