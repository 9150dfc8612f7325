"""Tests for oteltest.collector (no docker needed)."""

from __future__ import annotations

import stat
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from oteltest.collector import (
    CONTAINER_CONFIG_PATH,
    CONTAINER_RESULT_PATH,
    COLLECTOR_PORTS,
    CollectorProcessFactory,
    TraceFileLayout,
    prepare_result_file,
    wait_until_healthy,
)
from oteltest.config import Settings


class TestTraceFileLayout:
    def test_paths_follow_settings(self, tmp_path: Path) -> None:
        layout = TraceFileLayout(tmp_path, Settings(result_dir="out", expected_dir="ref"))

        assert layout.result_path("test_a") == tmp_path / "out" / "test_a.json"
        assert layout.expected_path("test_a") == tmp_path / "ref" / "test_a.json"


class TestPrepareResultFile:
    def test_creates_world_writable_empty_file(self, tmp_path: Path) -> None:
        path = prepare_result_file(tmp_path / "result" / "t.json")

        assert path.read_bytes() == b""
        assert stat.S_IMODE(path.stat().st_mode) == 0o666

    def test_truncates_previous_result(self, tmp_path: Path) -> None:
        path = tmp_path / "t.json"
        path.write_text("old\n")

        prepare_result_file(path)

        assert path.read_bytes() == b""


class TestWaitUntilHealthy:
    def test_returns_on_success(self) -> None:
        with patch("oteltest.collector.httpx.get", return_value=MagicMock(status_code=200)) as get:
            wait_until_healthy("http://localhost:13133/", timeout=1.0)

        get.assert_called_once()

    def test_retries_until_healthy(self) -> None:
        responses = [
            httpx.ConnectError("refused"),
            MagicMock(status_code=503),
            MagicMock(status_code=200),
        ]
        with (
            patch("oteltest.collector.httpx.get", side_effect=responses) as get,
            patch("oteltest.collector.time.sleep"),
        ):
            wait_until_healthy("http://localhost:13133/", timeout=60.0)

        assert get.call_count == 3

    def test_times_out(self) -> None:
        with (
            patch("oteltest.collector.httpx.get", side_effect=httpx.ConnectError("refused")),
            patch("oteltest.collector.time.sleep"),
            pytest.raises(TimeoutError, match="not healthy"),
        ):
            wait_until_healthy("http://localhost:13133/", timeout=0.0)


class TestCollectorProcessFactory:
    def test_build_mounts_config_and_result(self, tmp_path: Path) -> None:
        pytest.importorskip("testcontainers")
        container = MagicMock()
        for method in ("with_bind_ports", "with_volume_mapping", "with_command"):
            getattr(container, method).return_value = container

        with patch(
            "testcontainers.core.container.DockerContainer", return_value=container
        ) as docker:
            factory = CollectorProcessFactory(
                tmp_path / "config.yaml", tmp_path / "result.json", Settings()
            )
            assert factory.build() is container

        docker.assert_called_once_with(Settings().collector_image)
        assert [c.args for c in container.with_bind_ports.call_args_list] == [
            (port, port) for port in COLLECTOR_PORTS
        ]
        container.with_volume_mapping.assert_any_call(
            str((tmp_path / "config.yaml").resolve()), CONTAINER_CONFIG_PATH, mode="ro"
        )
        container.with_volume_mapping.assert_any_call(
            str((tmp_path / "result.json").resolve()), CONTAINER_RESULT_PATH, mode="rw"
        )
        container.with_command.assert_called_once_with(f"--config={CONTAINER_CONFIG_PATH}")

    def test_start_stops_container_when_unhealthy(self, tmp_path: Path) -> None:
        container = MagicMock()
        factory = CollectorProcessFactory(tmp_path / "c.yaml", tmp_path / "r.json", Settings())

        with (
            patch.object(factory, "build", return_value=MagicMock(start=lambda: container)),
            patch("oteltest.collector.wait_until_healthy", side_effect=TimeoutError("down")),
            pytest.raises(TimeoutError),
        ):
            factory.start()

        container.stop.assert_called_once()
