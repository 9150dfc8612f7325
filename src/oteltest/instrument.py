"""Span-per-call decorator for code exercised by instrumented tests.

``@instrument`` opens a span named after the function around every call.
If the call raises, the exception is recorded as an ``exception`` event, the
span status is set to ERROR, and the exception propagates unchanged. The
tracer comes from ``oteltest.context`` so calls made inside a running test
land in that test's pipeline.
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, TypeVar, overload

from oteltest.context import get_tracer

F = TypeVar("F", bound=Callable[..., Any])


def _make_sync_wrapper(original: Callable[..., Any], span_name: str) -> Callable[..., Any]:
    @functools.wraps(original)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        with get_tracer().start_as_current_span(span_name):
            return original(*args, **kwargs)

    return wrapper


def _make_async_wrapper(original: Callable[..., Any], span_name: str) -> Callable[..., Any]:
    @functools.wraps(original)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        with get_tracer().start_as_current_span(span_name):
            return await original(*args, **kwargs)

    return wrapper


@overload
def instrument(func: F) -> F: ...


@overload
def instrument(*, name: str | None = None) -> Callable[[F], F]: ...


def instrument(func: Any = None, *, name: str | None = None) -> Any:
    """Trace each call of the decorated function.

    Usable bare (``@instrument``) or with a span name (``@instrument(name=...)``).
    """

    def decorate(f: Callable[..., Any]) -> Callable[..., Any]:
        span_name = name or f.__name__
        if inspect.iscoroutinefunction(f):
            return _make_async_wrapper(f, span_name)
        return _make_sync_wrapper(f, span_name)

    if func is not None:
        return decorate(func)
    return decorate
