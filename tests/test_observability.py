"""Tests for logging setup, the recent-log buffer, metrics and diagnostics."""

import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from proxmox_mpc.observability.diagnostics import DiagnosticsCollector
from proxmox_mpc.observability.logging import JSONFormatter, RecentLogBuffer, configure_logging
from proxmox_mpc.observability.metrics import MetricsCollector


@pytest.fixture
def buffer() -> RecentLogBuffer:
    buffer = RecentLogBuffer(capacity=5)
    logger = logging.getLogger("proxmox_mpc.tests.buffer")
    logger.setLevel(logging.DEBUG)
    logger.addHandler(buffer)
    yield buffer
    logger.removeHandler(buffer)


class TestRecentLogBuffer:
    """Capture and query of recent records."""

    def test_captures_extras(self, buffer: RecentLogBuffer) -> None:
        logging.getLogger("proxmox_mpc.tests.buffer").error(
            "create failed", extra={"operation": "create", "error_category": "upstream", "tool": "createVM"}
        )

        [entry] = buffer.get_recent_logs()
        assert entry.level == "error"
        assert entry.operation == "create"
        assert entry.error_category == "upstream"
        assert entry.extra == {"tool": "createVM"}
        assert entry.to_dict()["errorCategory"] == "upstream"

    def test_level_is_a_minimum(self, buffer: RecentLogBuffer) -> None:
        logger = logging.getLogger("proxmox_mpc.tests.buffer")
        logger.info("info")
        logger.error("error")
        logger.critical("critical")

        messages = [e.message for e in buffer.get_recent_logs(level="error")]

        assert messages == ["error", "critical"]

    def test_operation_filter_and_limit(self, buffer: RecentLogBuffer) -> None:
        logger = logging.getLogger("proxmox_mpc.tests.buffer")
        for i in range(3):
            logger.info("create %d", i, extra={"operation": "create"})
        logger.info("update", extra={"operation": "update"})

        entries = buffer.get_recent_logs(limit=2, operation="create")

        assert [e.message for e in entries] == ["create 1", "create 2"]

    def test_capacity(self, buffer: RecentLogBuffer) -> None:
        logger = logging.getLogger("proxmox_mpc.tests.buffer")
        for i in range(8):
            logger.info("message %d", i)

        entries = buffer.get_recent_logs()

        assert len(entries) == 5  # noqa: PLR2004
        assert entries[0].message == "message 3"

    def test_clear(self, buffer: RecentLogBuffer) -> None:
        logging.getLogger("proxmox_mpc.tests.buffer").info("x")
        buffer.clear()

        assert buffer.get_recent_logs() == []


class TestConfigureLogging:
    def test_installs_buffer(self, restore_root_logging: None, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "server.log"

        buffer = configure_logging(level="DEBUG", structured=True, log_file=str(log_file), buffer_size=10)
        logging.getLogger("proxmox_mpc.tests").info("hello", extra={"operation": "read"})

        assert buffer in logging.getLogger().handlers
        assert buffer.get_recent_logs()[-1].operation == "read"
        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "hello"

    def test_json_formatter(self) -> None:
        record = logging.makeLogRecord(
            {"name": "x", "levelno": logging.WARNING, "levelname": "WARNING", "msg": "disk %s", "args": ("full",)}
        )

        payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["message"] == "disk full"


class TestMetricsCollector:
    def test_track_success(self) -> None:
        metrics = MetricsCollector()
        with metrics.track("tool.duration", tags={"tool": "createVM"}):
            pass

        [sample] = metrics.get_metrics()
        assert sample.unit == "ms"
        assert sample.value >= 0
        assert sample.tags == {"tool": "createVM", "outcome": "success"}

    def test_track_error(self) -> None:
        metrics = MetricsCollector()
        with pytest.raises(RuntimeError), metrics.track("tool.duration"):
            raise RuntimeError("boom")

        assert metrics.get_metrics()[0].tags["outcome"] == "error"

    def test_disabled(self) -> None:
        metrics = MetricsCollector(enabled=False)
        metrics.record("requests", 1, "count")

        assert metrics.get_metrics() == []

    def test_summary_and_limit(self) -> None:
        metrics = MetricsCollector()
        for value in (10, 20, 30):
            metrics.record("resources.fetch", value, "ms")
        metrics.record("requests", 1, "count")

        assert metrics.summary()["resources.fetch"] == {"count": 3, "avg": 20.0, "max": 30.0}
        assert [m.name for m in metrics.get_metrics(limit=1)] == ["requests"]
        assert metrics.get_metrics()[0].to_dict()["value"] == 10.0  # noqa: PLR2004


class TestDiagnosticsCollector:
    @pytest.mark.asyncio
    async def test_connected(self, infra_client: AsyncMock, workspace: Path) -> None:
        result = await DiagnosticsCollector(infra_client, workspace).check_connectivity()

        assert result["status"] == "healthy"
        assert result["services"]["proxmox"]["status"] == "connected"
        assert result["services"]["proxmox"]["version"] == "8.1.4"

    @pytest.mark.asyncio
    async def test_unreachable(self, infra_client: AsyncMock, workspace: Path) -> None:
        infra_client.get_version.side_effect = ConnectionError("timed out")

        result = await DiagnosticsCollector(infra_client, workspace).check_connectivity()

        assert result["status"] == "error"
        assert result["services"]["proxmox"]["error"] == "timed out"

    @pytest.mark.asyncio
    async def test_not_configured(self, workspace: Path) -> None:
        result = await DiagnosticsCollector(None, workspace).check_connectivity()

        assert result["status"] == "warning"

    def test_workspace_checks(self, workspace: Path, tmp_path: Path) -> None:
        assert DiagnosticsCollector(None, workspace).check_workspace()["configExists"] is True
        missing = DiagnosticsCollector(None, tmp_path / "nowhere").check_workspace()
        assert missing["status"] == "error"
        assert missing["state"] == "missing"
