"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator

import pytest

from graphcache.config import Settings
from graphcache.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    cache_id_var,
    configure_logging,
    operation_var,
)


def make_record(message: str = "Expired %d entities", *args: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="graphcache.cache.invalidation_cache",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=args,
        exc_info=None,
    )


class TestJsonFormatter:
    """Test JSON log output."""

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record("Expired %d entities", 2)))
        assert data["level"] == "INFO"
        assert data["logger"] == "graphcache.cache.invalidation_cache"
        assert data["message"] == "Expired 2 entities"
        assert "cache_id" not in data
        assert "operation" not in data

    def test_includes_log_context(self) -> None:
        with LogContext(cache_id="session", operation="expire"):
            data = json.loads(JsonFormatter().format(make_record()))
        assert data["cache_id"] == "session"
        assert data["operation"] == "expire"

    def test_extra_fields(self) -> None:
        record = make_record()
        record.typename = "Employee"
        record.evicted = {"Employee:1"}

        data = json.loads(JsonFormatter().format(record))
        assert data["typename"] == "Employee"
        assert data["evicted"] == "{'Employee:1'}"

    def test_exception_info(self) -> None:
        try:
            raise RuntimeError("policy failed")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))
        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "policy failed"


class TestConsoleFormatter:
    """Test human-readable log output."""

    def test_format_with_context(self) -> None:
        formatter = ConsoleFormatter(use_colors=False)
        with LogContext(cache_id="session", operation="evict_where"):
            line = formatter.format(make_record("Evicted %d %s entities", 2, "Employee"))
        assert "| graphcache.cache.invalidation_cache | Evicted 2 Employee entities" in line
        assert line.endswith("| cache=session op=evict_where")

    def test_format_without_context(self) -> None:
        line = ConsoleFormatter(use_colors=False).format(make_record())
        assert "cache=" not in line


class TestLogContext:
    """Test context variable handling."""

    def test_resets_on_exit(self) -> None:
        with LogContext(cache_id="outer"):
            with LogContext(cache_id="inner", operation="expire"):
                assert cache_id_var.get() == "inner"
            assert cache_id_var.get() == "outer"
            assert operation_var.get() == ""
        assert cache_id_var.get() == ""

    def test_ignores_unknown_keys(self) -> None:
        with LogContext(request_id="abc"):
            assert cache_id_var.get() == ""


class TestConfigureLogging:
    """Test handler installation on the package logger."""

    @pytest.fixture(autouse=True)
    def restore_logger(self) -> Iterator[None]:
        logger = logging.getLogger("graphcache")
        handlers, level = logger.handlers[:], logger.level
        yield
        logger.handlers[:] = handlers
        logger.setLevel(level)

    def test_json_handler(self) -> None:
        configure_logging(json_format=True, level="DEBUG")
        logger = logging.getLogger("graphcache")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    def test_defaults_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRAPHCACHE_LOG_JSON", "false")
        monkeypatch.setenv("GRAPHCACHE_LOG_LEVEL", "DEBUG")

        configure_logging(settings=Settings(_env_file=None))
        logger = logging.getLogger("graphcache")
        assert logger.level == logging.DEBUG
        assert isinstance(logger.handlers[0].formatter, ConsoleFormatter)

    def test_explicit_arguments_override_settings(self) -> None:
        configure_logging(
            json_format=True, level="ERROR", settings=Settings(_env_file=None, log_level="DEBUG")
        )
        logger = logging.getLogger("graphcache")
        assert logger.level == logging.ERROR
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    def test_reconfigure_replaces_handler(self) -> None:
        configure_logging(json_format=True)
        configure_logging(json_format=False, level="warning")
        logger = logging.getLogger("graphcache")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, ConsoleFormatter)
        assert logger.level == logging.WARNING
