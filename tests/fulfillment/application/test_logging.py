"""Tests for logging configuration helpers."""

import structlog
from fulfillment.utils.logging import add_context, clear_context, get_log_level


class TestLogLevel:
    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert get_log_level() == "ERROR"

    def test_level_follows_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "production")
        assert get_log_level() == "INFO"

    def test_unknown_environment_defaults_to_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "qa")
        assert get_log_level() == "INFO"


class TestLogContext:
    def test_add_and_clear_one_key(self):
        add_context(order_id="ord-1", shipment_id="shp-1")
        clear_context("order_id")
        assert structlog.contextvars.get_contextvars() == {"shipment_id": "shp-1"}

    def test_clear_everything(self):
        add_context(order_id="ord-1")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
