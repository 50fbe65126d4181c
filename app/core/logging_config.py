"""
Structured logging configuration for the application.

JSON logs in production, readable lines in development. Queue log lines are
prefixed "[Parse <task id>]", "[Match scheduler]" and so on; the JSON
formatter lifts that prefix into `queue` / `task_id` fields so one task's
history can be filtered out of the log stream.
"""

import logging
import re
import sys
import time
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger

_QUEUE_PREFIX = re.compile(r"^\[(Parse|Match|Generation)(?: ([^\]]+))?\]")

NOISY_LOGGERS = ("urllib3", "httpx", "openai", "boto3", "botocore", "pdfminer")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Adds timestamp, level, origin and queue context to every record.
    """

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['function'] = record.funcName

        prefix = _QUEUE_PREFIX.match(record.getMessage())
        if prefix:
            log_record['queue'] = prefix.group(1).lower()
            if prefix.group(2) and prefix.group(2) != "scheduler":
                log_record['task_id'] = prefix.group(2)

        if record.levelno >= logging.WARNING:
            log_record['line'] = record.lineno
            log_record['pathname'] = record.pathname


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON output (production) or plain lines (development)
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        console_handler.setFormatter(CustomJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s'))
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)


class ThrottledLogger:
    """
    Emits a given warning at most once per cooldown window.

    Used for conditions that repeat every poll (e.g. the database is still
    starting up) and would otherwise flood the logs.
    """

    def __init__(self, logger: logging.Logger, cooldown_seconds: float = 30.0):
        self.logger = logger
        self.cooldown_seconds = cooldown_seconds
        self._last_emitted: Optional[float] = None

    def warning(self, message: str, *args: Any) -> bool:
        now = time.monotonic()
        if self._last_emitted is not None and now - self._last_emitted < self.cooldown_seconds:
            return False
        self._last_emitted = now
        self.logger.warning(message, *args)
        return True
