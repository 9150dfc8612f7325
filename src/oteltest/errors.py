"""Exception hierarchy for oteltest."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from oteltest.compare import Mismatch
    from oteltest.outcome import TestOutcome


class OtelTestError(Exception):
    """Base class for all oteltest errors."""


class InitializationError(OtelTestError):
    """The tracing pipeline could not be constructed. Never retried."""


class MalformedExportError(OtelTestError):
    """An export line could not be decoded into a ``TracesData`` record."""

    def __init__(self, path: str | Path, line_number: int, reason: str) -> None:
        self.path = str(path)
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"{self.path}:{line_number}: {reason}")


class ExportTimeoutError(OtelTestError):
    """The export file did not reach a complete state in time."""


class ComparisonMismatchError(AssertionError, OtelTestError):
    """Actual and expected traces diverged on one or more projections."""

    def __init__(self, mismatches: list[Mismatch]) -> None:
        self.mismatches = list(mismatches)
        lines = [f"{len(self.mismatches)} trace mismatch(es):"]
        lines.extend(f"  - {m}" for m in self.mismatches)
        super().__init__("\n".join(lines))


class TestFailure(AssertionError, OtelTestError):
    """Raised to the host test framework after a failed body has been exported."""

    __test__ = False

    def __init__(self, outcome: TestOutcome) -> None:
        self.outcome = outcome
        super().__init__(f"{outcome.kind.value}: {outcome.message}")
