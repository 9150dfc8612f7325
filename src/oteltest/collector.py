"""Disposable OpenTelemetry collector for integration scenarios.

The collector runs in a container as a different user than the test
process, so the result file is created world-writable before the container
starts and bind-mounted read-write at ``/result.json``. Its file exporter
appends one ``TracesData`` JSON line per batch, which ``oteltest.reader``
parses.

Requires the ``integration`` extra (testcontainers) and a docker daemon.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from oteltest.config import Settings

if TYPE_CHECKING:
    from testcontainers.core.container import DockerContainer

logger = logging.getLogger(__name__)

CONTAINER_CONFIG_PATH = "/etc/opentelemetry-collector.yaml"
CONTAINER_RESULT_PATH = "/result.json"

OTLP_GRPC_PORT = 4317
OTLP_HTTP_PORT = 4318
HEALTH_CHECK_PORT = 13133
METRICS_PORT = 8889
COLLECTOR_PORTS = (OTLP_GRPC_PORT, OTLP_HTTP_PORT, HEALTH_CHECK_PORT, METRICS_PORT)

_HEALTH_POLL_INTERVAL = 0.5


class TraceFileLayout:
    """Maps a test name to ``result/<test_name>.json`` and ``expected/<test_name>.json``."""

    def __init__(self, root: str | Path = ".", settings: Settings | None = None) -> None:
        settings = settings or Settings()
        self._root = Path(root)
        self._result_dir = self._root / settings.result_dir
        self._expected_dir = self._root / settings.expected_dir

    def result_path(self, test_name: str) -> Path:
        return self._result_dir / f"{test_name}.json"

    def expected_path(self, test_name: str) -> Path:
        return self._expected_dir / f"{test_name}.json"


def prepare_result_file(path: str | Path) -> Path:
    """Create (or truncate) ``path`` with mode 0o666 so the collector can write it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    os.chmod(path, 0o666)
    return path


class CollectorProcessFactory:
    """Builds a collector container bound to a config file and a result file."""

    def __init__(
        self,
        host_config_path: str | Path,
        host_result_path: str | Path,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._host_config_path = Path(host_config_path).resolve()
        self._host_result_path = Path(host_result_path).resolve()

    def build(self) -> DockerContainer:
        """Return the configured, not yet started, container."""
        from testcontainers.core.container import DockerContainer

        container = DockerContainer(self._settings.collector_image)
        for port in COLLECTOR_PORTS:
            container = container.with_bind_ports(port, port)
        return (
            container.with_volume_mapping(
                str(self._host_config_path), CONTAINER_CONFIG_PATH, mode="ro"
            )
            .with_volume_mapping(str(self._host_result_path), CONTAINER_RESULT_PATH, mode="rw")
            .with_command(f"--config={CONTAINER_CONFIG_PATH}")
        )

    def start(self) -> DockerContainer:
        """Start the container and wait for its health endpoint."""
        container = self.build().start()
        try:
            wait_until_healthy(
                f"http://localhost:{HEALTH_CHECK_PORT}/",
                timeout=self._settings.collector_startup_timeout_seconds,
            )
        except Exception:
            container.stop()
            raise
        logger.info("Collector %s started", self._settings.collector_image)
        return container


def wait_until_healthy(url: str, timeout: float = 30.0) -> None:
    """Poll ``url`` until it answers 2xx.

    Raises:
        TimeoutError: If the endpoint is not healthy within ``timeout`` seconds.
    """
    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        attempt += 1
        try:
            response = httpx.get(url, timeout=2.0)
            if response.status_code < 300:
                return
            logger.debug("Health check returned %d on attempt %d", response.status_code, attempt)
        except httpx.HTTPError:
            logger.debug("Health check failed on attempt %d", attempt, exc_info=True)

        if time.monotonic() >= deadline:
            raise TimeoutError(f"Collector not healthy at {url} after {timeout:.0f}s")
        time.sleep(_HEALTH_POLL_INTERVAL)


class IntegrationTestExecutor:
    """Runs one test in a subprocess against a fresh collector and returns its export path."""

    def __init__(
        self,
        test_name: str,
        node_id: str,
        root: str | Path = ".",
        settings: Settings | None = None,
    ) -> None:
        """
        Args:
            test_name: Name used for ``result/<test_name>.json``.
            node_id: pytest node id of the test to run, e.g. ``tests/scenarios.py::test_x``.
            root: Directory holding the collector config and the result directory.
        """
        self._settings = settings or Settings()
        self._test_name = test_name
        self._node_id = node_id
        self._root = Path(root).resolve()
        self._layout = TraceFileLayout(self._root, self._settings)

    async def execute(self) -> Path:
        result_path = prepare_result_file(self._layout.result_path(self._test_name))
        factory = CollectorProcessFactory(
            self._root / self._settings.collector_config_path,
            result_path,
            self._settings,
        )
        container = await asyncio.to_thread(factory.start)
        try:
            process = await asyncio.create_subprocess_exec(
                sys.executable,
                "-m",
                "pytest",
                self._node_id,
                cwd=str(self._root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            output, _ = await process.communicate()
            logger.info(
                "%s exited with %s\n%s",
                self._node_id,
                process.returncode,
                output.decode("utf-8", errors="replace"),
            )
            # the collector batches; give it time to write before it is stopped
            await asyncio.sleep(self._settings.flush_interval_seconds)
        finally:
            await asyncio.to_thread(container.stop)

        return result_path
