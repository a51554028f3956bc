# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across executor and orchestrator
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging

Modules log through plain ``logging.getLogger(__name__)``. This module
adds run context to every record:

- log_context(): binds execution_id / task_slug / workflow ids for a block
- configure_logging(): installs a console or JSON handler (LOG_FORMAT=json)
- log_checkpoint(): named progress markers ("workflow_started", ...)

Context lives in a ContextVar, so steps running concurrently inside one
workflow group each log their own task_slug.

Usage:
    with log_context(execution_id="exec-123", task_slug="content-writer"):
        logger.info("Running task")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union


@dataclass(frozen=True)
class LogContext:
    """Contextual fields attached to every log record."""
    execution_id: Optional[str] = None
    task_slug: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_execution_id: Optional[str] = None
    correlation_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only, with extra merged in."""
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        result.update(self.extra)
        return result


_NAMED_FIELDS = {f.name for f in fields(LogContext)} - {"extra"}

_current_context: ContextVar[LogContext] = ContextVar(
    "engine_log_context", default=LogContext()
)


def get_current_context() -> LogContext:
    return _current_context.get()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[LogContext]:
    """
    Bind context fields for the duration of a block.

    Nested blocks inherit the outer fields. Keywords that are not
    LogContext fields are kept under ``extra``.
    """
    parent = get_current_context()
    named = {k: v for k, v in kwargs.items() if k in _NAMED_FIELDS}
    other = {k: v for k, v in kwargs.items() if k not in _NAMED_FIELDS}
    token = _current_context.set(replace(parent, **named, extra={**parent.extra, **other}))
    try:
        yield _current_context.get()
    finally:
        _current_context.reset(token)


# ============================================================================
# FORMATTERS
# ============================================================================

class ContextFilter(logging.Filter):
    """Copies the current LogContext onto each record as ``record.context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = get_current_context().to_dict()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        checkpoint = getattr(record, "checkpoint", None)
        if checkpoint:
            entry["checkpoint"] = checkpoint
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Readable single-line format with the most useful ids inline."""

    _SHORT = (("workflow_execution_id", "wf"), ("execution_id", "exec"), ("task_slug", "task"))

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(name)s%(ids)s: %(message)s", "%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        context = getattr(record, "context", None) or {}
        parts = [f"{short}={context[key]}" for key, short in self._SHORT if context.get(key)]
        record.ids = f" [{', '.join(parts)}]" if parts else ""
        return super().format(record)


def configure_logging(
    level: Union[str, int, None] = None,
    json_output: bool = False,
) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Log level name or number. Defaults to LOG_LEVEL, then INFO.
        json_output: JSON lines instead of console format (also LOG_FORMAT=json)
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Log a named checkpoint (e.g. "workflow_started", "workflow_finished")."""
    logger = logger or logging.getLogger("checkpoint")
    logger.info(
        f"CHECKPOINT: {name}",
        extra={"checkpoint": {"name": name, **(data or {})}},
    )


__all__ = [
    "LogContext",
    "ContextFilter",
    "JsonFormatter",
    "ConsoleFormatter",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
