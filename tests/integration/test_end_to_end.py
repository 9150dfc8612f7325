"""End-to-end integration test: scenario -> collector -> file export -> comparison.

Requires a docker daemon and the ``integration`` extra.
Run with: pytest tests/integration/ -m integration
"""

from __future__ import annotations

from pathlib import Path

import pytest

from oteltest.collector import IntegrationTestExecutor, TraceFileLayout
from oteltest.compare import TraceComparator
from oteltest.config import Settings
from oteltest.content import TraceContent
from oteltest.models import STATUS_ERROR

pytestmark = pytest.mark.integration

ROOT = Path(__file__).resolve().parents[2]
SCENARIOS = "tests/integration/otel_scenarios.py"


@pytest.fixture(scope="module")
def layout() -> TraceFileLayout:
    return TraceFileLayout(ROOT, Settings(expected_dir="tests/integration/expected"))


async def _run_scenario(test_name: str) -> TraceContent:
    pytest.importorskip("testcontainers")
    executor = IntegrationTestExecutor(test_name, f"{SCENARIOS}::{test_name}", ROOT)
    return TraceContent.from_file(await executor.execute())


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_succeed_otel(self, layout: TraceFileLayout) -> None:
        actual = await _run_scenario("test_succeed_otel")

        assert actual.span_names() == ["sample_add", "test_succeed_otel"]
        assert actual.status_count(STATUS_ERROR) == 0
        TraceComparator().assert_match(
            actual, TraceContent.from_file(layout.expected_path("test_succeed_otel"))
        )

    @pytest.mark.asyncio
    async def test_failed_otel(self, layout: TraceFileLayout) -> None:
        actual = await _run_scenario("test_failed_otel")

        assert actual.status_count(STATUS_ERROR) == 3
        assert actual.span_event_exceptions()["abnormal_termination"] == [
            "ValueError: some error at sample_add_err"
        ]
        TraceComparator().assert_match(
            actual, TraceContent.from_file(layout.expected_path("test_failed_otel"))
        )
