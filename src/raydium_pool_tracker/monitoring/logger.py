"""Structured logging helpers carrying transaction and pool context."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, TextIO

from ..config.settings import MonitoringConfig, get_app_config

_LOGGER_CACHE: Dict[str, logging.Logger] = {}
_CORRELATION_ID: ContextVar[str] = ContextVar("correlation_id", default="-")
_POOL_ADDRESS: ContextVar[str] = ContextVar("pool_address", default="-")
_LOGGING_CONFIGURED = False

_STANDARD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())
_CONTEXT_ATTRS = {"correlation_id", "pool_address"}


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - simple accessor
        record.correlation_id = _CORRELATION_ID.get("-")
        record.pool_address = _POOL_ADDRESS.get("-")
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter that emits one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "signature": getattr(record, "correlation_id", "-"),
            "pool": getattr(record, "pool_address", "-"),
        }
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key not in _CONTEXT_ATTRS and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    config: Optional[MonitoringConfig] = None,
    *,
    stream: Optional[TextIO] = None,
) -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    cfg = config or get_app_config().monitoring
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(_ContextFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))
    logging.captureWarnings(True)
    _LOGGING_CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    if name not in _LOGGER_CACHE:
        _LOGGER_CACHE[name] = logging.getLogger(name)
    return _LOGGER_CACHE[name]


@contextmanager
def correlation_scope(
    correlation_id: Optional[str],
    pool_address: Optional[str] = None,
) -> Iterator[None]:
    """Tag every record logged inside the block with a signature and pool."""

    token = _CORRELATION_ID.set(correlation_id or "-")
    pool_token = _POOL_ADDRESS.set(pool_address or _POOL_ADDRESS.get("-"))
    try:
        yield
    finally:
        _POOL_ADDRESS.reset(pool_token)
        _CORRELATION_ID.reset(token)


@contextmanager
def pool_scope(pool_address: Optional[str]) -> Iterator[None]:
    token = _POOL_ADDRESS.set(pool_address or "-")
    try:
        yield
    finally:
        _POOL_ADDRESS.reset(token)


def current_correlation_id() -> str:
    return _CORRELATION_ID.get("-")


__all__ = [
    "StructuredFormatter",
    "configure_logging",
    "correlation_scope",
    "current_correlation_id",
    "get_logger",
    "pool_scope",
]
