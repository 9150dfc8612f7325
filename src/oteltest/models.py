"""Pydantic models for the OTLP JSON export format.

One line of a collector file export decodes to one ``TracesData``::

    {"resourceSpans": [{"resource": {"attributes": [...]},
                        "scopeSpans": [{"spans": [{"name", "status", "events"}]}]}]}

Only the fields the verification engine looks at are modelled; IDs, timestamps
and parent links are accepted and ignored because they differ on every run.
"""

from __future__ import annotations

from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

STATUS_UNSET: Final[int] = 0
STATUS_OK: Final[int] = 1
STATUS_ERROR: Final[int] = 2

_STATUS_NAMES: Final[dict[str, int]] = {
    "STATUS_CODE_UNSET": STATUS_UNSET,
    "STATUS_CODE_OK": STATUS_OK,
    "STATUS_CODE_ERROR": STATUS_ERROR,
}

EXCEPTION_MESSAGE: Final[str] = "exception.message"
SERVICE_NAME: Final[str] = "service.name"


class _OtlpModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


def attribute_value(value: Any) -> Any:
    """Extract the typed value from an OTLP ``AnyValue`` dict."""
    if isinstance(value, dict):
        if "stringValue" in value:
            return value["stringValue"]
        if "intValue" in value:
            return int(value["intValue"])
        if "doubleValue" in value:
            return value["doubleValue"]
        if "boolValue" in value:
            return value["boolValue"]
        if "arrayValue" in value:
            return [attribute_value(v) for v in value["arrayValue"].get("values", [])]
        if not value:
            return None
    # Plain value (hand-written reference files may use raw values)
    return value


class KeyValue(_OtlpModel):
    key: str
    value: Any = None  # {"stringValue": ...} | {"intValue": ...} | ...


def _attributes_to_dict(attributes: tuple[KeyValue, ...]) -> dict[str, Any]:
    return {attr.key: attribute_value(attr.value) for attr in attributes}


class Status(_OtlpModel):
    code: int = STATUS_UNSET
    message: str = ""

    @field_validator("code", mode="before")
    @classmethod
    def parse_code(cls, v: Any) -> Any:
        """Accept the protobuf enum name as well as the integer."""
        if isinstance(v, str) and v in _STATUS_NAMES:
            return _STATUS_NAMES[v]
        return v


class Event(_OtlpModel):
    name: str = ""
    attributes: tuple[KeyValue, ...] = Field(default_factory=tuple)

    def attribute_map(self) -> dict[str, Any]:
        return _attributes_to_dict(self.attributes)

    @property
    def exception_message(self) -> str:
        """The ``exception.message`` attribute, or ``""`` when absent."""
        value = self.attribute_map().get(EXCEPTION_MESSAGE)
        return value if isinstance(value, str) else ""


class Span(_OtlpModel):
    name: str
    status: Status = Field(default_factory=Status)
    events: tuple[Event, ...] = Field(default_factory=tuple)
    attributes: tuple[KeyValue, ...] = Field(default_factory=tuple)

    @property
    def status_code(self) -> int:
        return self.status.code


class ScopeSpans(_OtlpModel):
    spans: tuple[Span, ...] = Field(default_factory=tuple)


class Resource(_OtlpModel):
    attributes: tuple[KeyValue, ...] = Field(default_factory=tuple)

    def attribute_map(self) -> dict[str, Any]:
        return _attributes_to_dict(self.attributes)


class ResourceSpans(_OtlpModel):
    resource: Resource = Field(default_factory=Resource)
    scopeSpans: tuple[ScopeSpans, ...] = Field(default_factory=tuple)

    @property
    def service_name(self) -> str:
        value = self.resource.attribute_map().get(SERVICE_NAME)
        return "" if value is None else str(value)

    def iter_spans(self):
        for scope_spans in self.scopeSpans:
            yield from scope_spans.spans


class TracesData(_OtlpModel):
    resourceSpans: tuple[ResourceSpans, ...] = Field(default_factory=tuple)
