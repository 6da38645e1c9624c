"""Tests for logging setup and formatters."""

import json
import logging
import sys

import pytest

from wxbackup.common.logging import (
    DetailedFormatter,
    LogContext,
    SimpleFormatter,
    StructuredFormatter,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way it was."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg="hello", **attrs):
    record = logging.LogRecord("wxbackup.test", logging.INFO, __file__, 10, msg, (), None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Test log formatters."""

    def test_structured_is_json(self):
        data = json.loads(StructuredFormatter().format(make_record()))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "wxbackup.test"
        assert "thread" in data

    def test_structured_includes_extra_fields(self):
        record = make_record(extra_fields={"account": "wxid_a"})
        assert json.loads(StructuredFormatter().format(record))["account"] == "wxid_a"

    def test_structured_includes_exception(self):
        try:
            raise ValueError("bad row")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        data = json.loads(StructuredFormatter().format(record))
        assert data["exception"]["type"] == "ValueError"
        assert "bad row" in data["exception"]["traceback"]

    def test_simple_and_detailed(self):
        record = make_record()
        assert SimpleFormatter().format(record).endswith("| wxbackup.test | hello")
        assert "MainThread" in DetailedFormatter().format(record)


class TestSetupLogging:
    """Test setup_logging."""

    def test_sets_level_and_console_handler(self, restore_root_logger):
        setup_logging(level="debug", format="detailed")
        root = restore_root_logger
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, DetailedFormatter)
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_file_handler_writes_json(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "export.log"
        setup_logging(level="INFO", log_file=log_file)
        logging.getLogger("wxbackup.test").info("to file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["message"] == "to file"


class TestLogContext:
    """Test LogContext."""

    def test_fields_attached_inside_context(self):
        logger = logging.getLogger("wxbackup.test")
        with LogContext(logger, account="wxid_a"):
            record = logging.getLogRecordFactory()("x", logging.INFO, __file__, 1, "m", (), None)
        assert record.extra_fields == {"account": "wxid_a"}

        after = logging.getLogRecordFactory()("x", logging.INFO, __file__, 1, "m", (), None)
        assert not hasattr(after, "extra_fields")
