"""Tests for structured logging."""

import json
import logging

from encore.observability.logging import JsonFormatter, LogContext, user_id_var


def make_record(message: str = "Socket joined chat", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("encore.realtime.gateway", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "encore.realtime.gateway"
        assert data["message"] == "Socket joined chat"
        assert "user_id" not in data

    def test_context_fields(self) -> None:
        with LogContext(user_id="u1", request_id="req-1"):
            data = json.loads(JsonFormatter().format(make_record()))
        assert data["user_id"] == "u1"
        assert data["request_id"] == "req-1"

    def test_extra_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(chat_id="c1", raw=object())))
        assert data["chat_id"] == "c1"
        assert isinstance(data["raw"], str)


class TestLogContext:
    def test_restores_previous_value(self) -> None:
        with LogContext(user_id="outer"):
            with LogContext(user_id="inner"):
                assert user_id_var.get() == "inner"
            assert user_id_var.get() == "outer"
        assert user_id_var.get() == ""

    def test_unknown_keys_ignored(self) -> None:
        with LogContext(tenant="t1"):
            pass
