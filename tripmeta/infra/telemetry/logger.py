"""
Structured Logger
==================

Structured logging with automatic request context injection.

Design:
  - JSON-structured output for machine parsing
  - Human-readable fallback for development
  - Automatic context injection (request_id, service_kind)
  - Event-name messages with keyword fields:
        logger.info("request_admitted", kind="vision", wait_ms=12.5)

Architecture:
  - This is the lowest-level telemetry primitive
  - All other layers import from here
  - Built on stdlib logging only
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import socket
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# ── Context Variables ──────────────────────────────────────────────

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)
_service_kind: ContextVar[str | None] = ContextVar("service_kind", default=None)

def set_request_context(
    *,
    request_id: str | None = None,
    service_kind: str | None = None,
) -> None:
    """Set request-scoped context for log enrichment."""
    if request_id is not None:
        _request_id.set(request_id)
    if service_kind is not None:
        _service_kind.set(service_kind)

def clear_request_context() -> None:
    """Clear all request-scoped context."""
    _request_id.set(None)
    _service_kind.set(None)

# Attributes owned by LogRecord; passing them via ``extra`` raises KeyError.
_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "relativeCreated",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "pathname", "filename", "module", "levelno", "levelname",
    "thread", "threadName", "process", "processName", "msecs",
    "taskName", "message",
})

def _safe_extra(fields: dict[str, Any]) -> dict[str, Any]:
    return {(f"field_{k}" if k in _RECORD_ATTRS else k): v for k, v in fields.items()}

# ── Structured Formatter ──────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """JSON-structured log formatter with automatic context injection."""

    def __init__(self, *, json_output: bool = True, include_traceback: bool = True):
        super().__init__()
        self._json = json_output
        self._include_tb = include_traceback
        self._hostname = socket.gethostname()
        self._pid = os.getpid()

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "pid": self._pid,
            "host": self._hostname,
        }

        ctx_fields = {
            "request_id": _request_id.get(None),
            "service_kind": _service_kind.get(None),
        }
        entry["context"] = {k: v for k, v in ctx_fields.items() if v is not None}

        _JSON_SAFE = (str, int, float, bool, type(None))
        extras: dict[str, Any] = {}
        for key, val in record.__dict__.items():
            if key.startswith("_") or key in _RECORD_ATTRS:
                continue
            extras[key] = val if isinstance(val, _JSON_SAFE) else str(val)

        if extras:
            entry["data"] = extras

        if record.exc_info and self._include_tb:
            entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
                if record.exc_info[2]
                else None,
            }

        if self._json:
            return json.dumps(entry, default=str, ensure_ascii=False)

        # Human-readable fallback
        ctx = entry.get("context", {})
        req_id = (ctx.get("request_id") or "-")[:8]
        data = " ".join(f"{k}={v}" for k, v in extras.items())
        return (
            f"{entry['timestamp']} | {entry['level']:8s} | "
            f"{req_id} | {entry['logger']}:{entry['line']} | "
            f"{entry['message']}" + (f" | {data}" if data else "")
        )

# ── Structured Logger ─────────────────────────────────────────────

class StructuredLogger:
    """
    Wrapper around stdlib logger providing structured logging helpers.

    Usage:
        log = StructuredLogger("tripmeta.infra.runtime")
        log.info("service_ready", kind="vision", init_ms=104.2)
        log.warning("rate_limit_wait", kind="text_generation", wait_s=3.1)
    """

    __slots__ = ("_logger", "_name")

    def __init__(self, name: str):
        self._name = name
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._name

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, event, extra=_safe_extra(kwargs), stacklevel=3)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, exc: BaseException | None = None, **kwargs: Any) -> None:
        if exc:
            self._logger.error(event, extra=_safe_extra(kwargs), exc_info=exc, stacklevel=2)
        else:
            self._log(logging.ERROR, event, **kwargs)

    def exception(self, event: str, **kwargs: Any) -> None:
        self._logger.exception(event, extra=_safe_extra(kwargs), stacklevel=2)

    def bind(self, **context: Any) -> BoundLogger:
        """Create a child logger with bound context fields."""
        return BoundLogger(self, context)

class BoundLogger:
    """Logger with pre-bound context fields."""

    __slots__ = ("_context", "_parent")

    def __init__(self, parent: StructuredLogger, context: dict[str, Any]):
        self._parent = parent
        self._context = context

    def _merged(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        return {**self._context, **kwargs}

    def debug(self, event: str, **kwargs: Any) -> None:
        self._parent.debug(event, **self._merged(kwargs))

    def info(self, event: str, **kwargs: Any) -> None:
        self._parent.info(event, **self._merged(kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self._parent.warning(event, **self._merged(kwargs))

    def error(self, event: str, exc: BaseException | None = None, **kwargs: Any) -> None:
        self._parent.error(event, exc=exc, **self._merged(kwargs))

# ── Setup ──────────────────────────────────────────────────────────

_initialized = False

def setup_logging(
    *,
    level: str = "INFO",
    json_output: bool | None = None,
    log_dir: str | None = None,
) -> None:
    """
    Initialize the logging system. Call once at application startup.

    Args:
        level: Root log level
        json_output: Force JSON output. Auto-detects if None (JSON in production, human in dev)
        log_dir: Directory for log files. None = stdout only.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    if json_output is None:
        json_output = os.getenv("ENVIRONMENT", "development") != "development"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(StructuredFormatter(json_output=json_output))
    console.setLevel(logging.DEBUG)
    root.addHandler(console)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / "orchestrator.log",
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter(json_output=True))
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_path / "errors.log",
            maxBytes=20 * 1024 * 1024,  # 20MB
            backupCount=3,
            encoding="utf-8",
        )
        error_handler.setFormatter(StructuredFormatter(json_output=True))
        error_handler.setLevel(logging.ERROR)
        root.addHandler(error_handler)

    # Reduce noise from third-party libraries
    for noisy in ("httpx", "httpcore", "asyncio", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
