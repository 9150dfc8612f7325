"""Context propagation helpers using ``contextvars``.

Provides per-async-task storage of the active tracer and test name so that
instrumented code can find the running test's pipeline without explicit
parameter threading. Child tasks and ``asyncio.to_thread`` workers inherit
a copy of the context, so a body spawned by the runner sees the runner's
tracer.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Iterator

from opentelemetry import trace

_tracer: contextvars.ContextVar[trace.Tracer | None] = contextvars.ContextVar(
    "oteltest_tracer", default=None
)
_test_name: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "oteltest_test_name", default=None
)

_FALLBACK_TRACER_NAME = "oteltest"


def get_tracer() -> trace.Tracer:
    """Return the active test's tracer, or the global API tracer outside a test."""
    tracer = _tracer.get()
    if tracer is None:
        return trace.get_tracer(_FALLBACK_TRACER_NAME)
    return tracer


def get_test_name() -> str | None:
    """Return the name of the test currently running, or ``None``."""
    return _test_name.get()


@contextmanager
def use_tracer(tracer: trace.Tracer, test_name: str | None = None) -> Iterator[None]:
    """Bind ``tracer`` (and optionally the test name) for the enclosed block."""
    tracer_token = _tracer.set(tracer)
    name_token = _test_name.set(test_name)
    try:
        yield
    finally:
        _test_name.reset(name_token)
        _tracer.reset(tracer_token)
