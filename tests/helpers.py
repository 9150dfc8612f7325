"""Builders for OTLP JSON export lines used across tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def make_event(name: str, message: str | None = None) -> dict[str, Any]:
    attrs = []
    if message is not None:
        attrs.append({"key": "exception.message", "value": {"stringValue": message}})
    return {"name": name, "timeUnixNano": "1700000000000000000", "attributes": attrs}


def make_span(
    name: str,
    status: int | str = 0,
    events: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "traceId": "5b8efff798038103d269b633813fc60c",
        "spanId": "eee19b7ec3c1b174",
        "name": name,
        "startTimeUnixNano": "1700000000000000000",
        "endTimeUnixNano": "1700000001000000000",
        "status": {"code": status},
        "events": events or [],
    }


def make_traces_data(
    *scopes: list[dict[str, Any]], service_name: str = "svc"
) -> dict[str, Any]:
    """One resource span holding one scope span per ``scopes`` entry."""
    return {
        "resourceSpans": [
            {
                "resource": {
                    "attributes": [
                        {"key": "service.name", "value": {"stringValue": service_name}}
                    ]
                },
                "scopeSpans": [{"scope": {"name": "oteltest"}, "spans": spans} for spans in scopes],
            }
        ]
    }


def write_export(path: Path, records: list[dict[str, Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(r) + "\n" for r in records), encoding="utf-8")
    return path
