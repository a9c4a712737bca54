"""Unit tests for project tracker logging and observability.

This module tests the logging infrastructure, performance monitoring,
and store event hooks.
"""

import json
import logging
import sys

import pytest
from unittest.mock import MagicMock

from project_tracker.tracker_logging import (
    LOGGER_NAME,
    JsonFormatter,
    PerformanceMonitor,
    StoreEvents,
    log_error_with_context,
    log_operation,
    log_performance,
    performance_monitor,
    setup_logging,
)


@pytest.fixture(autouse=True)
def clean_monitor():
    performance_monitor.clear()
    yield
    performance_monitor.clear()


@pytest.fixture
def restore_tracker_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestJsonFormatter:
    """Test cases for JsonFormatter."""

    def _record(self, exc_info=None):
        logger = logging.getLogger("test")
        return logger.makeRecord("test", logging.INFO, "file.py", 1, "Test message", (), exc_info)

    def test_json_formatter_basic(self):
        """Test basic JSON formatting."""
        data = json.loads(JsonFormatter().format(self._record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert "module" in data
        assert "function" in data
        assert "line" in data

    def test_json_formatter_with_exception(self):
        """Test JSON formatting with exception info."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = self._record(exc_info=sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "exception" in data
        assert "ValueError" in data["exception"]

    def test_json_formatter_with_extra_fields(self):
        """Test JSON formatting with extra fields."""
        record = self._record()
        record.extra_fields = {"kind": "bug", "item_id": "123-abc"}

        data = json.loads(JsonFormatter().format(record))

        assert data["kind"] == "bug"
        assert data["item_id"] == "123-abc"


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_console_handler_only(self, restore_tracker_logger):
        setup_logging(logging.WARNING)

        assert restore_tracker_logger.level == logging.WARNING
        assert len(restore_tracker_logger.handlers) == 1

    def test_file_handler_writes_json(self, restore_tracker_logger, tmp_path):
        log_file = tmp_path / "tracker.log"
        setup_logging(logging.INFO, log_file=log_file)

        assert len(restore_tracker_logger.handlers) == 2
        for handler in restore_tracker_logger.handlers:
            handler.flush()

        first_line = log_file.read_text(encoding="utf-8").splitlines()[0]
        assert json.loads(first_line)["message"] == "Project tracker logging initialized"

    def test_repeated_setup_does_not_duplicate_handlers(self, restore_tracker_logger):
        setup_logging()
        setup_logging()

        assert len(restore_tracker_logger.handlers) == 1


class TestPerformanceMonitor:
    """Test cases for PerformanceMonitor."""

    def test_record_metric(self):
        monitor = PerformanceMonitor()

        monitor.record_metric("load_duration", 0.5, {"status": "success"})

        metrics = monitor.get_metrics("load_duration")
        assert metrics["load_duration"][0]["value"] == 0.5
        assert metrics["load_duration"][0]["tags"]["status"] == "success"
        assert "timestamp" in metrics["load_duration"][0]

    def test_get_all_metrics(self):
        monitor = PerformanceMonitor()

        monitor.record_metric("metric1", 1)
        monitor.record_metric("metric2", 2)
        monitor.record_metric("metric1", 3)

        all_metrics = monitor.get_metrics()
        assert len(all_metrics) == 2
        assert [m["value"] for m in all_metrics["metric1"]] == [1, 3]

    def test_unknown_metric_is_empty(self):
        assert PerformanceMonitor().get_metrics("missing") == {"missing": []}


class TestLogPerformance:
    """Test cases for log_performance decorator."""

    def test_success_records_metric(self):
        @log_performance("test_operation")
        def operation():
            return "result"

        assert operation() == "result"

        metrics = performance_monitor.get_metrics("test_operation_duration")["test_operation_duration"]
        assert len(metrics) == 1
        assert metrics[0]["value"] >= 0
        assert metrics[0]["tags"]["status"] == "success"

    def test_failure_records_metric_and_reraises(self):
        @log_performance("test_operation")
        def operation():
            raise ValueError("Test error")

        with pytest.raises(ValueError):
            operation()

        metrics = performance_monitor.get_metrics("test_operation_duration")["test_operation_duration"]
        assert metrics[0]["tags"]["status"] == "error"
        assert metrics[0]["tags"]["error_type"] == "ValueError"

    def test_preserves_function_metadata(self):
        @log_performance("documented")
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."


class TestLogOperation:
    """Test cases for log_operation context manager."""

    def test_success_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)

        with log_operation("create_item", kind="bug"):
            pass

        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("Completed operation: create_item") for m in messages)
        completed = [r for r in caplog.records if r.getMessage().startswith("Completed")][0]
        assert completed.extra_fields["kind"] == "bug"

    def test_failure_is_logged_and_reraised(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)

        with pytest.raises(RuntimeError):
            with log_operation("delete_item"):
                raise RuntimeError("disk gone")

        failed = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(failed) == 1
        assert failed[0].extra_fields["error_type"] == "RuntimeError"


class TestStoreEvents:
    """Test cases for StoreEvents hooks."""

    def test_emit_triggers_registered_hook(self):
        events = StoreEvents()
        callback = MagicMock()
        events.register_hook("item_created", callback)

        events.emit("item_created", kind="task", item_id="1-a")

        callback.assert_called_once()
        kwargs = callback.call_args.kwargs
        assert kwargs["kind"] == "task"
        assert kwargs["item_id"] == "1-a"
        assert "timestamp" in kwargs
        assert "event_type" not in kwargs

    def test_hooks_for_other_events_not_called(self):
        events = StoreEvents()
        callback = MagicMock()
        events.register_hook("item_deleted", callback)

        events.emit("item_created", item_id="x")

        callback.assert_not_called()

    def test_failing_hook_does_not_raise(self, caplog):
        events = StoreEvents()
        second = MagicMock()
        events.register_hook("data_saved", MagicMock(side_effect=RuntimeError("boom")))
        events.register_hook("data_saved", second)

        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            events.emit("data_saved")

        second.assert_called_once()
        assert any("Hook failed for event data_saved" in r.getMessage() for r in caplog.records)

    def test_unregister_hook(self):
        events = StoreEvents()
        callback = MagicMock()
        events.register_hook("item_updated", callback)
        events.unregister_hook("item_updated", callback)

        events.emit("item_updated")

        callback.assert_not_called()


def test_log_error_with_context(caplog):
    with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
        log_error_with_context(OSError("read-only"), {"operation": "save", "data_file": "/tmp/x"})

    record = caplog.records[-1]
    assert "Error in save: read-only" in record.getMessage()
    assert record.extra_fields["context"]["data_file"] == "/tmp/x"
    assert record.extra_fields["error_type"] == "OSError"
