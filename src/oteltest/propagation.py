"""Serializable carrier for cross-process trace context.

``PropagationContext`` is a plain ``str -> str`` mapping that a text-map
propagator writes into (inject) and reads from (extract). Being a pydantic
root model it serializes to a JSON object, so it can travel inside any
message payload.
"""

from __future__ import annotations

from opentelemetry import context as otel_context
from opentelemetry import propagate
from opentelemetry.propagators.textmap import TextMapPropagator
from pydantic import Field, RootModel


class PropagationContext(RootModel[dict[str, str]]):
    root: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def inject(
        cls,
        context: otel_context.Context | None = None,
        propagator: TextMapPropagator | None = None,
    ) -> PropagationContext:
        """Capture ``context`` (default: the current one) into a new carrier.

        Uses ``propagator`` when given, otherwise the process-wide propagator.
        """
        carrier: dict[str, str] = {}
        if propagator is None:
            propagate.inject(carrier, context=context)
        else:
            propagator.inject(carrier, context=context)
        return cls(carrier)

    def extract(
        self, propagator: TextMapPropagator | None = None
    ) -> otel_context.Context:
        """Rebuild an OTel context from the carried keys."""
        if propagator is None:
            return propagate.extract(self.root)
        return propagator.extract(self.root)

    def get(self, key: str) -> str | None:
        return self.root.get(key)

    def set(self, key: str, value: str) -> None:
        self.root[key] = value

    def keys(self) -> list[str]:
        return list(self.root.keys())

    def __len__(self) -> int:
        return len(self.root)
