"""Tests for structured logging setup."""

from __future__ import annotations

import orjson
import pytest
import structlog

from provider_gateway.shared.observability import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_json_logs_render_one_object_per_line(self, capsys) -> None:
        configure_logging("INFO", json_logs=True)
        structlog.get_logger("provider_gateway.test").info("dispatch_success", provider="openai")
        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = orjson.loads(line)
        assert record["event"] == "dispatch_success"
        assert record["provider"] == "openai"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filters_lower_events(self, capsys) -> None:
        configure_logging("WARNING", json_logs=True)
        log = structlog.get_logger("provider_gateway.test")
        log.info("quiet")
        log.warning("loud")
        out = capsys.readouterr().out
        assert "quiet" not in out
        assert "loud" in out

    def test_console_renderer(self, capsys) -> None:
        configure_logging("DEBUG")
        structlog.get_logger("provider_gateway.test").debug("circuit_opened", provider="stripe")
        out = capsys.readouterr().out
        assert "circuit_opened" in out
        assert "stripe" in out
