"""
Structured logging configuration for ShareAudit.

Provides:
- JSON-formatted logs for production (machine-readable)
- Human-readable logs for development
- An audit context (job_id, scan_id, account) attached to every record
  logged while a scan or integrated job is being driven

Usage:
    from shareaudit.logging_config import log_context, setup_logging

    setup_logging(level="INFO", json_format=True)

    logger = logging.getLogger(__name__)
    with log_context(job_id=job.id, account="alice@example.com"):
        logger.info("Scanning account")
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Fields in the order they are rendered
CONTEXT_FIELDS = ("job_id", "scan_id", "account")

_audit_context: ContextVar[dict[str, str] | None] = ContextVar("audit_context", default=None)

_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "taskName"}


def get_log_context() -> dict[str, str]:
    """Return a copy of the audit context of the current task."""
    return dict(_audit_context.get() or {})


@contextmanager
def log_context(**fields: Any) -> Iterator[dict[str, str]]:
    """
    Attach fields to every record logged inside the block.

    Nested blocks add to the enclosing fields, so a scan run by an
    integrated job logs both ids. None values are ignored.
    """
    merged = get_log_context()
    merged.update({key: str(value) for key, value in fields.items() if value is not None})
    token = _audit_context.set(merged)
    try:
        yield merged
    finally:
        _audit_context.reset(token)


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {
        "timestamp": "2026-03-01T10:30:00.123456+00:00",
        "level": "INFO",
        "logger": "shareaudit.jobs.scan",
        "message": "Scan completed",
        "job_id": "0190...",
        "scan_id": "0190...",
        "account": "alice@example.com",
        ...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(get_log_context())

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in _record_extras(record).items():
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable log formatter for development.

    Output format:
    2026-03-01 10:30:00 INFO     [job=0190a1b2 scan=0190c3d4 alice@example.com] [shareaudit.jobs.scan] Scan completed files=12
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    @staticmethod
    def _context_prefix(context: dict[str, str]) -> str:
        parts = []
        for key in CONTEXT_FIELDS:
            value = context.get(key)
            if not value:
                continue
            if key == "account":
                parts.append(value)
            else:
                parts.append(f"{key.removesuffix('_id')}={value[:8]}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        context = get_log_context()
        extras = [
            f"{key}={value}"
            for key, value in _record_extras(record).items()
            if context.get(key) != str(value)
        ]
        extra_str = (" " + " ".join(extras)) if extras else ""

        message = (
            f"{timestamp} {level}{self._context_prefix(context)} [{record.name}] "
            f"{record.getMessage()}{extra_str}"
        )
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Configure the root logger.

    Console output goes to stderr so command output on stdout stays
    parseable. A log file, when given, always receives JSON lines.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = DevelopmentFormatter(use_colors=sys.stderr.isatty())

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for noisy in ("httpx", "httpcore", "hpack", "sqlalchemy.engine", "google.auth", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
