"""
Logging configuration for structured JSON logging.

JSON output for production log shipping, a readable format for local
development, and a logger adapter that binds session context to every
turn event.
"""

import logging
import os
import sys
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from constants import LOG_FORMAT_JSON, LOG_LEVEL_DEVELOPMENT, LOG_LEVEL_PRODUCTION

READABLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(logger)s %(message)s"


class ContextualJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that always emits timestamp, level and logger name.

    Fields passed through ``extra`` (session_id, event_type, ...) are kept as
    top-level keys by the base formatter.
    """

    def __init__(self, *args, rename_fields: Optional[dict] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.rename_fields = rename_fields or {}

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", self.formatTime(record, self.datefmt))
        if not log_record.get("level"):
            log_record["level"] = record.levelname
        if not log_record.get("logger"):
            log_record["logger"] = record.name

        for old_name, new_name in self.rename_fields.items():
            if old_name in log_record:
                log_record[new_name] = log_record.pop(old_name)


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("true", "1", "yes")


def setup_logging(use_json: Optional[bool] = None, log_level: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        use_json: Force JSON (True) or readable (False) output. When None,
                  reads LOG_FORMAT_JSON from the environment.
        log_level: Level name such as "INFO". When None, DEBUG is used for
                   ENV=dev/development and INFO otherwise.
    """
    if use_json is None:
        use_json = _env_flag("LOG_FORMAT_JSON", LOG_FORMAT_JSON)

    if log_level is None:
        env = os.getenv("ENV", "production").lower()
        log_level = LOG_LEVEL_DEVELOPMENT if env in ("dev", "development") else LOG_LEVEL_PRODUCTION

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        formatter: logging.Formatter = ContextualJsonFormatter(
            JSON_FORMAT,
            rename_fields={"timestamp": "@timestamp", "level": "severity"},
        )
    else:
        formatter = logging.Formatter(READABLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that merges bound context into every record.

    Usage:
        logger = StructuredLoggerAdapter(logging.getLogger(__name__), {
            "session_id": session.id,
        })
        logger.info_event("turn_completed", "Turn finished", artifact_updated=True)
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs

    def log_event(self, level: int, event_type: str, message: str, **context: Any) -> None:
        """Log a typed event with arbitrary key-value context."""
        context["event_type"] = event_type
        self.log(level, message, extra=context)

    def info_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.INFO, event_type, message, **context)

    def error_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.ERROR, event_type, message, **context)

    def warning_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.WARNING, event_type, message, **context)

    def debug_event(self, event_type: str, message: str, **context: Any) -> None:
        self.log_event(logging.DEBUG, event_type, message, **context)


def session_logger(logger: logging.Logger, session_id: str, **context: Any) -> StructuredLoggerAdapter:
    """Return an adapter bound to one game session."""
    return StructuredLoggerAdapter(logger, {"session_id": session_id, **context})
