"""
Unit tests for structured logging helpers.
"""

import json
import logging

from app.core.logging_config import CustomJsonFormatter, ThrottledLogger


def _format(message, level=logging.INFO):
    formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s')
    record = logging.LogRecord("app.tasks.parse_tasks", level, __file__, 42, message, None, None)
    return json.loads(formatter.format(record))


class TestJsonFormatter:

    def test_task_prefix_becomes_fields(self):
        data = _format("[Parse 0b6f-task] Completed, candidate c1")

        assert data["queue"] == "parse"
        assert data["task_id"] == "0b6f-task"
        assert data["level"] == "INFO"
        assert "line" not in data

    def test_scheduler_prefix_has_no_task_id(self):
        data = _format("[Match scheduler] Dispatching 2 due tasks", level=logging.WARNING)

        assert data["queue"] == "match"
        assert "task_id" not in data
        assert data["line"] == 42

    def test_plain_message(self):
        assert "queue" not in _format("Task supervisor started 3 schedulers")


class TestThrottledLogger:

    def test_cooldown(self, caplog):
        throttled = ThrottledLogger(logging.getLogger("tests.throttle"), cooldown_seconds=60)

        with caplog.at_level(logging.WARNING, logger="tests.throttle"):
            assert throttled.warning("Database not ready") is True
            assert throttled.warning("Database not ready") is False

        assert len(caplog.records) == 1

    def test_zero_cooldown_always_emits(self):
        throttled = ThrottledLogger(logging.getLogger("tests.throttle"), cooldown_seconds=0)

        assert throttled.warning("first") is True
        assert throttled.warning("second") is True
