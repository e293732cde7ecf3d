"""JSON logging correlated by migration signature or ActionKey."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, ContextManager, Dict, Iterator, Optional

from ..config.settings import MonitoringConfig, get_app_config
from ..domain.schemas import ActionKey

_CORRELATION_ID: ContextVar[str] = ContextVar("correlation_id", default="-")
_LOGGING_CONFIGURED = False
_NOISY_LOGGERS = ("websockets", "urllib3", "httpx", "httpcore")

_STANDARD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())


class _CorrelationFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - simple accessor
        record.correlation_id = _CORRELATION_ID.get()
        return True


class StructuredFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key != "correlation_id" and not key.startswith("_")
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: Optional[MonitoringConfig] = None, *, force: bool = False) -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED and not force:
        return
    cfg = config or get_app_config().monitoring
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(_CorrelationFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.captureWarnings(True)
    _LOGGING_CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger; handlers are installed by :func:`configure_logging`."""

    return logging.getLogger(name)


@contextmanager
def correlation_scope(correlation_id: Optional[str]) -> Iterator[None]:
    """Set the id attached to every record logged inside the block.

    Tasks created inside the block inherit the id. A nested scope replaces it
    until that inner block exits.
    """

    token = _CORRELATION_ID.set(correlation_id or "-")
    try:
        yield
    finally:
        _CORRELATION_ID.reset(token)


def migration_scope(signature: str) -> ContextManager[None]:
    """Correlate listener records with the migration transaction signature."""

    return correlation_scope(f"sig:{signature}")


def action_scope(key: ActionKey) -> ContextManager[None]:
    """Correlate orchestrator records with the (token, pool) pair being acted on."""

    return correlation_scope(f"action:{key.token_id}:{key.pool_id}")


def current_correlation_id() -> str:
    return _CORRELATION_ID.get()


__all__ = [
    "StructuredFormatter",
    "action_scope",
    "configure_logging",
    "correlation_scope",
    "current_correlation_id",
    "get_logger",
    "migration_scope",
]
