"""Traced scenarios run one at a time against a live collector.

Not collected on its own (no ``test_`` prefix on the module); the end-to-end
tests run each function in a subprocess by node id.
"""

from __future__ import annotations

import oteltest


@oteltest.instrument
def sample_add(a: int, b: int) -> int:
    return a + b


@oteltest.instrument
def sample_add_err(a: int, b: int) -> int:
    raise ValueError("some error at sample_add_err")


@oteltest.otel_test
def test_succeed_otel() -> None:
    assert sample_add(10, 20) == 30


@oteltest.otel_test
def test_failed_otel() -> None:
    assert sample_add_err(10, 20) == 30
