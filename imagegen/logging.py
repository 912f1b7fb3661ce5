"""
Structured JSON logging.

Callers emit :class:`LogRecord` payloads through :func:`debug`, :func:`info`,
:func:`warning` and :func:`error`. Records travel through a queue to a
background listener that formats them as one JSON object per line.
"""

import dataclasses
import enum
import json
import logging
import os
import queue
import sys
import traceback
from datetime import datetime, timezone
from logging import Handler
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, List, Optional, Tuple

from .config import Settings
from .constants import LOG_STRING_MAX_LENGTH

REDACTED = "***REDACTED***"

_REDACT_KEYS: set[str] = set()

_logger: Optional[logging.Logger] = None
_log_listener: Optional[QueueListener] = None


class LogEvent(enum.Enum):
    """Event tags carried in ``LogRecord.event``."""

    SERVER_EVENT = "server_event"
    GENERATION_START = "generation_start"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_FAILURE = "generation_failure"
    PATH_RESOLUTION = "path_resolution"
    CACHE_EVENT = "cache_event"
    PROVIDER_REQUEST = "provider_request"
    PROVIDER_RESPONSE = "provider_response"
    PROVIDER_ERROR_DETAILS = "provider_error_details"
    DOWNLOAD_RETRY = "download_retry"
    DOWNLOAD_FAILURE = "download_failure"
    PERSIST_EVENT = "persist_event"
    REQUEST_VALIDATION_FAILURE = "request_validation_failure"


@dataclasses.dataclass
class LogError:
    """Exception details attached to a record."""

    name: str
    message: str
    stack_trace: Optional[str] = None
    args: Optional[Tuple[Any, ...]] = None


@dataclasses.dataclass
class LogRecord:
    """
    Payload of a structured log line.

    Attributes:
        event: A :class:`LogEvent` value
        message: Short summary
        data: Context, redacted and truncated on output
        error: Filled from the exception passed to :func:`warning`/:func:`error`
    """

    event: str
    message: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[LogError] = None


def _to_json_safe(value: Any) -> Any:
    """Convert ``value`` into plain JSON types.

    Keys in the redaction set are masked, ``None`` values are dropped, and
    binary payloads are replaced by their size so image bytes never reach
    the log.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    if isinstance(value, enum.Enum):
        return _to_json_safe(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _to_json_safe(dataclasses.asdict(value))
    if isinstance(value, dict):
        safe: Dict[str, Any] = {}
        for key, item in value.items():
            name = str(key)
            if name.lower() in _REDACT_KEYS:
                safe[name] = REDACTED
                continue
            converted = _to_json_safe(item)
            if converted is not None:
                safe[name] = converted
        return safe
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json_safe(item) for item in value if item is not None]
    return repr(value)


def _truncate_strings(data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, str) and len(value) > LOG_STRING_MAX_LENGTH:
            data[key] = value[:LOG_STRING_MAX_LENGTH] + "...[truncated]"


class JSONFormatter(logging.Formatter):
    """
    Renders each record as a single compact JSON line.

    Records carrying a :class:`LogRecord` (attached as ``log_record`` by the
    helpers below) are emitted under ``detail``; plain stdlib records from
    third-party loggers keep their message and exception info.
    """

    include_stack = True

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        payload = getattr(record, "log_record", None)
        if isinstance(payload, LogRecord):
            detail = _to_json_safe(payload)
            if isinstance(detail.get("data"), dict):
                _truncate_strings(detail["data"])
            if not self.include_stack and isinstance(detail.get("error"), dict):
                detail["error"].pop("stack_trace", None)
            line["detail"] = detail
        else:
            line["message"] = record.getMessage()
            if record.exc_info and record.exc_info[0] is not None:
                exc_type, exc_value, exc_tb = record.exc_info
                line["error"] = {"name": exc_type.__name__, "message": str(exc_value)}
                if self.include_stack:
                    line["error"]["stack_trace"] = "".join(
                        traceback.format_exception(exc_type, exc_value, exc_tb)
                    )

        return json.dumps(
            _to_json_safe(line), ensure_ascii=False, separators=(",", ":")
        )


class ConsoleJSONFormatter(JSONFormatter):
    """JSON lines without stack traces, for reading in a terminal."""

    include_stack = False


def _file_handler(path: str, level: Optional[int] = None) -> logging.FileHandler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(JSONFormatter())
    if level is not None:
        handler.setLevel(level)
    return handler


def init_logging(settings: Settings) -> logging.Logger:
    """Route the application, ``mcp`` and ``httpx`` loggers through one queue.

    Returns:
        The application logger used by the structured helpers
    """
    global _logger, _log_listener, _REDACT_KEYS

    shutdown_logging()

    # stdout carries the MCP stdio protocol
    console = logging.StreamHandler(stream=sys.stderr)
    console.setFormatter(
        ConsoleJSONFormatter() if settings.log_pretty_console else JSONFormatter()
    )
    handlers: List[Handler] = [console]

    for path, level in (
        (settings.log_file_path, None),
        (settings.error_log_file_path, logging.ERROR),
    ):
        if not path:
            continue
        try:
            handlers.append(_file_handler(path, level))
        except OSError as e:
            logging.getLogger(__name__).warning(
                "Failed to open log file %s: %s", path, e
            )

    log_queue: queue.Queue = queue.Queue(-1)
    queue_handler = QueueHandler(log_queue)
    _log_listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    _log_listener.start()

    levels = {
        "": logging.WARNING,
        "httpx": logging.WARNING,
        "mcp": logging.INFO,
        settings.app_name: settings.log_level.upper(),
    }
    for name, level in levels.items():
        logger = logging.getLogger(name)
        logger.handlers = [queue_handler]
        logger.propagate = name == ""
        logger.setLevel(level)

    _REDACT_KEYS = {key.lower() for key in settings.redact_log_fields}
    _logger = logging.getLogger(settings.app_name)
    return _logger


def shutdown_logging() -> None:
    """Stop the listener, flushing queued records."""
    global _log_listener
    if _log_listener is not None:
        _log_listener.stop()
        _log_listener = None


def _log(level: int, record: LogRecord, exc: Optional[BaseException] = None) -> None:
    if exc is not None:
        stack_trace = None
        if level >= logging.ERROR:
            stack_trace = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        record.error = LogError(
            name=type(exc).__name__,
            message=str(exc),
            stack_trace=stack_trace,
            args=tuple(_to_json_safe(list(exc.args))),
        )
        if not record.message:
            record.message = str(exc) or "An unspecified error occurred"

    if _logger is not None:
        _logger.log(level, record.message, extra={"log_record": record})


def debug(record: LogRecord) -> None:
    _log(logging.DEBUG, record)


def info(record: LogRecord) -> None:
    _log(logging.INFO, record)


def warning(record: LogRecord, exc: Optional[BaseException] = None) -> None:
    _log(logging.WARNING, record, exc=exc)


def error(record: LogRecord, exc: Optional[BaseException] = None) -> None:
    _log(logging.ERROR, record, exc=exc)
