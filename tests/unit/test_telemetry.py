"""Unit tests for telemetry module."""

import asyncio
import json
import logging
import sys

import pytest

from src.commons.telemetry.decorators import LogContext, log_exceptions, timed
from src.commons.telemetry.logger import (
    JsonFormatter,
    TextFormatter,
    clear_log_context,
    configure_logging,
    get_correlation_id,
    get_log_context,
    set_correlation_id,
    set_log_context,
)


def _record(msg="Staged", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="src.application.services.staging_ledger",
        level=level,
        pathname="/app/src/application/services/staging_ledger.py",
        lineno=120,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


class TestCorrelationId:
    """Tests for correlation ID management."""

    def test_request_id_becomes_correlation_id(self):
        assert set_correlation_id("req-42") == "req-42"
        assert get_correlation_id() == "req-42"

    def test_generated_when_missing(self):
        cid = set_correlation_id()
        assert len(cid) == 36

    def test_tasks_keep_their_own_id(self):
        """A drain run task does not leak its id into the caller."""
        set_correlation_id("request")

        async def run():
            set_correlation_id("run-1")
            return get_correlation_id()

        assert asyncio.run(run()) == "run-1"
        assert get_correlation_id() == "request"


class TestLogContext:
    """Tests for logging context management."""

    def test_set_log_context_merges(self):
        set_log_context(operator="ops")
        set_log_context(staging_id="item-1")
        assert get_log_context() == {"operator": "ops", "staging_id": "item-1"}

    def test_clear_context(self):
        set_log_context(operator="ops")
        clear_log_context()
        assert get_log_context() == {}

    def test_returned_context_is_a_copy(self):
        set_log_context(operator="ops")
        get_log_context()["staging_id"] = "item-1"
        assert "staging_id" not in get_log_context()

    def test_scoped_context_restores_previous(self):
        set_log_context(operator="ops")

        with LogContext(staging_id="item-1"):
            assert get_log_context() == {"operator": "ops", "staging_id": "item-1"}
            with LogContext(upload_id="up-1"):
                assert get_log_context()["upload_id"] == "up-1"
            assert "upload_id" not in get_log_context()

        assert get_log_context() == {"operator": "ops"}


class TestJsonFormatter:
    """Tests for JSON log formatter."""

    def test_basic_fields(self):
        data = json.loads(JsonFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "src.application.services.staging_ledger"
        assert data["message"] == "Staged"
        assert data["path"].endswith("staging_ledger.py:120")
        assert "timestamp" in data

    def test_correlation_id_and_context(self):
        set_correlation_id("req-7")
        set_log_context(operator="ops")

        data = json.loads(JsonFormatter().format(_record()))

        assert data["correlation_id"] == "req-7"
        assert data["context"] == {"operator": "ops"}

    def test_extras_are_top_level(self):
        record = _record(staging_id="item-1", size_bytes=300)
        data = json.loads(JsonFormatter(include_path=False).format(record))

        assert data["staging_id"] == "item-1"
        assert data["size_bytes"] == 300
        assert "path" not in data

    def test_non_json_extras_are_stringified(self):
        record = _record(missing_indexes={1, 2})
        data = json.loads(JsonFormatter().format(record))
        assert data["missing_indexes"] in ("{1, 2}", "{2, 1}")

    def test_exception_included(self):
        try:
            raise ValueError("disk full")
        except ValueError:
            record = _record("Write failed", logging.ERROR, exc_info=sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: disk full" in data["exception"]


class TestTextFormatter:
    """Tests for text log formatter."""

    def test_basic_format(self):
        output = TextFormatter().format(_record())

        assert "INFO" in output
        assert "[src.application.services.staging_ledger]" in output
        assert "Staged" in output

    def test_fields_rendered_as_sorted_key_values(self):
        set_log_context(operator="ops")
        output = TextFormatter().format(_record(upload_id="up-1"))
        assert output.endswith("operator=ops upload_id=up-1")

    def test_short_correlation_id(self):
        set_correlation_id("abcdef123456")
        assert "[abcdef12]" in TextFormatter().format(_record())


class TestConfigureLogging:
    """Tests for logger configuration."""

    def test_json_logger(self):
        logger = configure_logging(
            level="DEBUG", format_type="json", logger_name="test.json"
        )
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)
        assert logger.propagate is False

    def test_reconfigure_replaces_handlers(self):
        configure_logging(level="INFO", format_type="json", logger_name="test.text")
        logger = configure_logging(
            level="INFO", format_type="text", logger_name="test.text"
        )
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, TextFormatter)


class TestLogExceptions:
    """Tests for @log_exceptions."""

    def test_logs_type_and_reraises(self, caplog):
        @log_exceptions
        def fail():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError), caplog.at_level(logging.ERROR):
            fail()

        record = caplog.records[-1]
        assert record.exception_type == "RuntimeError"
        assert "fail" in record.getMessage()

    def test_custom_message_and_level(self, caplog):
        @log_exceptions(message="Readiness sync aborted", level=logging.WARNING)
        async def sync():
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError), caplog.at_level(logging.WARNING):
            asyncio.run(sync())

        assert caplog.records[-1].getMessage() == "Readiness sync aborted"
        assert caplog.records[-1].levelno == logging.WARNING


class TestTimed:
    """Tests for @timed."""

    def test_reports_duration(self, caplog):
        @timed(level=logging.INFO)
        def publish():
            return "published"

        with caplog.at_level(logging.INFO):
            assert publish() == "published"

        assert caplog.records[-1].duration_ms >= 0

    def test_async_under_threshold_is_silent(self, caplog):
        @timed(threshold_ms=60_000)
        async def drain():
            await asyncio.sleep(0)
            return 3

        with caplog.at_level(logging.DEBUG):
            assert asyncio.run(drain()) == 3

        assert not [r for r in caplog.records if "drain" in r.getMessage()]
