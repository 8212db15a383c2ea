from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .security import redact_secrets

LOG_FILE_NAME = "nahledovka.log"
LOG_MAX_BYTES = 5_000_000
LOG_BACKUP_COUNT = 5
CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class RedactionFilter(logging.Filter):
    """Masks RTSP passwords and credential pairs before a record is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if message:
            record.msg = redact_secrets(message)
            record.args = ()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": redact_secrets(record.getMessage()),
        }
        if record.exc_info:
            payload["exc"] = redact_secrets(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=True)


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handler.addFilter(RedactionFilter())
    return handler


def _file_handler(logs_dir: Path) -> logging.Handler:
    handler = RotatingFileHandler(
        logs_dir / LOG_FILE_NAME,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RedactionFilter())
    return handler


def setup_logging(level: str, data_dir: Path) -> Path:
    """Route every logger through the console and the rotating JSON file.

    Returns the log file path. Calling it again replaces the handlers from the
    previous call.
    """
    logs_dir = data_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level.upper())
    root_logger.addHandler(_console_handler())
    root_logger.addHandler(_file_handler(logs_dir))
    return logs_dir / LOG_FILE_NAME


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
