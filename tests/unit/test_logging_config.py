"""Unit tests for logging configuration."""

import json
import logging

import pytest
import structlog

from featuregraph.logging_config import configure_logging, get_logger


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _lines(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestConfigureLogging:
    """Test stdlib and structlog records share one output."""

    def test_json_file_output(self, tmp_path):
        log_file = tmp_path / "logs" / "featuregraph.log"
        configure_logging(level="INFO", format="json", file=str(log_file))

        get_logger("featuregraph.test").info("stdlib message")
        structlog.get_logger("featuregraph.test").bind(workspace_id="ws-1").warning("analysis_cancelled")

        records = _lines(log_file)
        assert [r["event"] for r in records] == ["stdlib message", "analysis_cancelled"]
        assert records[0]["level"] == "info"
        assert records[0]["logger"] == "featuregraph.test"
        assert records[1]["workspace_id"] == "ws-1"
        assert "timestamp" in records[1]

    def test_level_filters(self, tmp_path):
        log_file = tmp_path / "featuregraph.log"
        configure_logging(level="warning", format="json", file=str(log_file))

        get_logger("featuregraph.test").info("hidden")
        get_logger("featuregraph.test").error("shown")

        assert [r["event"] for r in _lines(log_file)] == ["shown"]

    def test_replaces_previous_handlers(self, tmp_path):
        configure_logging(format="human")
        configure_logging(format="human", file=str(tmp_path / "a.log"))

        assert len(logging.getLogger().handlers) == 2

    def test_sqlalchemy_engine_quieted(self):
        configure_logging(level="DEBUG")

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
