"""
Logging configuration tests.
"""
import json

import pytest
import structlog

from sandbox_runner.infrastructure.logging import bound_context, configure_logging, get_logger
from sandbox_runner.infrastructure.logging.logging_config import render_text


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestRenderText:
    def test_line_layout(self):
        line = render_text(None, "info", {
            "timestamp": "2025-01-14 10:30:45",
            "level": "info",
            "logger": "sandbox_runner.test",
            "event": "Container started",
            "image": "python:3.11-alpine",
            "attempt": 2,
            "tags": ["a"],
        })

        assert line.startswith("[2025-01-14 10:30:45] [")
        assert "INFO" in line
        assert "[sandbox_runner.test] Container started" in line
        assert line.endswith("attempt=2 image=python:3.11-alpine tags=['a']")


class TestConfigureLogging:
    def test_json_output_carries_bound_context(self, capsys):
        configure_logging("INFO", "json")
        logger = get_logger("sandbox_runner.test")

        with bound_context(request_id="req-1"):
            logger.info("Execution finished", outcome="success")
        logger.debug("hidden")

        lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
        assert len(lines) == 1
        event = json.loads(lines[0])
        assert event["event"] == "Execution finished"
        assert event["request_id"] == "req-1"
        assert event["outcome"] == "success"
        assert event["level"] == "info"

    def test_text_output(self, capsys):
        configure_logging("DEBUG", "text")

        get_logger("sandbox_runner.test").debug("Cache miss", cache_key="abc")

        out = capsys.readouterr().out
        assert "Cache miss" in out
        assert "cache_key=abc" in out
