"""Newline-delimited OTLP JSON export reader.

The collector's file exporter appends one ``TracesData`` object per line. A
line that is newline-terminated has been fully written; a trailing line
without a newline may still be in flight while the collector flushes.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from pydantic import ValidationError

from oteltest.errors import ExportTimeoutError, MalformedExportError
from oteltest.models import TracesData

logger = logging.getLogger(__name__)


def _decode_line(raw: str, path: Path, line_number: int) -> TracesData:
    try:
        return TracesData.model_validate_json(raw)
    except ValidationError as e:
        raise MalformedExportError(path, line_number, str(e)) from e


class TraceExportReader:
    """Parses a collector export file into ``TracesData`` records."""

    def __init__(self, *, strict: bool = False) -> None:
        """
        Args:
            strict: Treat an unterminated, undecodable final line as malformed
                instead of skipping it as a write still in progress.
        """
        self._strict = strict

    def read(self, path: str | Path) -> list[TracesData]:
        """Decode every non-empty line of ``path``.

        Raises:
            MalformedExportError: If a complete line fails to decode.
        """
        path = Path(path)
        records: list[TracesData] = []

        with path.open("rb") as f:
            for line_number, raw_bytes in enumerate(f, start=1):
                try:
                    raw = raw_bytes.decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning("Skipping unreadable line %s:%d", path, line_number)
                    continue

                terminated = raw.endswith("\n")
                raw = raw.strip()
                if not raw:
                    continue

                if terminated or self._strict:
                    records.append(_decode_line(raw, path, line_number))
                    continue

                try:
                    records.append(_decode_line(raw, path, line_number))
                except MalformedExportError:
                    logger.warning(
                        "Skipping partially written final line %s:%d", path, line_number
                    )

        logger.debug("Read %d trace records from %s", len(records), path)
        return records


def read_export(path: str | Path, *, strict: bool = False) -> list[TracesData]:
    """Shorthand for ``TraceExportReader(strict=strict).read(path)``."""
    return TraceExportReader(strict=strict).read(path)


def wait_for_export(
    path: str | Path,
    timeout: float = 10.0,
    poll_interval: float = 0.25,
) -> Path:
    """Block until the export file looks complete.

    Complete means non-empty, newline-terminated, and the same size on two
    consecutive polls.

    Raises:
        ExportTimeoutError: If the file is not complete within ``timeout`` seconds.
    """
    path = Path(path)
    deadline = time.monotonic() + timeout
    last_size = -1

    while True:
        size = path.stat().st_size if path.exists() else 0
        if size > 0 and size == last_size and _ends_with_newline(path):
            return path
        last_size = size

        if time.monotonic() >= deadline:
            raise ExportTimeoutError(
                f"{path} not complete after {timeout:.1f}s (size={size})"
            )
        time.sleep(poll_interval)


def _ends_with_newline(path: Path) -> bool:
    with path.open("rb") as f:
        f.seek(-1, 2)
        return f.read(1) == b"\n"
