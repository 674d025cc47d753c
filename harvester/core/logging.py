"""
Structured Logging Module with Trace IDs
-----------------------------------------
Provides structured logging with trace IDs and per-strategy context so that
every line emitted while a periodic task works through the fleet can be tied
back to the task run and the strategy being processed.

This module uses loguru's bind() to attach the current context to each record.
"""

import contextlib
import contextvars
import functools
import json
import sys
import uuid
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from loguru import logger

# Context variables for structured logging
trace_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "trace_id", default=None
)
task_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("task", default=None)
strategy_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "strategy", default=None
)

F = TypeVar("F", bound=Callable[..., Any])


def generate_trace_id() -> str:
    """Generate a short trace ID for one task run.

    Returns:
        str: First 8 chars of a UUID4
    """
    return str(uuid.uuid4())[:8]


def get_trace_id() -> Optional[str]:
    return trace_id_ctx.get()


def get_task() -> Optional[str]:
    return task_ctx.get()


def get_strategy() -> Optional[str]:
    return strategy_ctx.get()


def get_context() -> dict[str, Any]:
    """Get all current context values as a dictionary."""
    return {
        "trace_id": get_trace_id(),
        "task": get_task(),
        "strategy": get_strategy(),
    }


class StructuredLogger:
    """
    Wrapper for loguru logger with automatic context injection.

    Every call binds the current trace ID, task name and strategy address
    (when set) before delegating to loguru.
    """

    def __init__(self) -> None:
        self._logger = logger

    def _bind_context(self) -> Any:
        context = {k: v for k, v in get_context().items() if v is not None}
        return self._logger.bind(**context) if context else self._logger

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().error(message, *args, **kwargs)

    def critical(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().critical(message, *args, **kwargs)

    def exception(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._bind_context().opt(exception=True).error(message, *args, **kwargs)


def with_trace_id(func: F) -> F:
    """
    Decorator to inject a fresh trace ID for a function call.

    The trace ID persists for the call and everything it calls, then is
    cleared. An already-set trace ID is reused.

    Example:
        @with_trace_id
        def run(self) -> None:
            log.info("Processing fleet")
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        token = None
        if not get_trace_id():
            token = trace_id_ctx.set(generate_trace_id())
        try:
            return func(*args, **kwargs)
        finally:
            if token is not None:
                trace_id_ctx.reset(token)

    return cast(F, wrapper)


@contextlib.contextmanager
def task_context(name: str) -> Iterator[None]:
    """Tag all log lines inside the block with a task name."""
    token = task_ctx.set(name)
    try:
        yield
    finally:
        task_ctx.reset(token)


@contextlib.contextmanager
def strategy_context(address: str) -> Iterator[None]:
    """Tag all log lines inside the block with a strategy address."""
    token = strategy_ctx.set(address)
    try:
        yield
    finally:
        strategy_ctx.reset(token)


def json_formatter(record: dict[str, Any]) -> str:
    """
    Format log record as JSON with structured fields.

    Loguru treats a callable format's return value as a template, so the
    serialized line is stashed in extra and referenced from the template.
    """
    log_entry = {
        "time": record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
        "level": record["level"].name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }

    extra = record.get("extra", {})
    for key in ("trace_id", "task", "strategy"):
        if value := extra.get(key):
            log_entry[key] = value

    if record.get("exception"):
        log_entry["exception"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else None,
            "value": str(record["exception"].value) if record["exception"].value else None,
        }

    record["extra"]["_json"] = json.dumps(log_entry, default=str)
    return "{extra[_json]}\n"


def human_readable_formatter(record: dict[str, Any]) -> str:
    """Format log record in human-readable format with context."""
    fmt = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level>"

    extra = record.get("extra", {})
    if extra.get("trace_id"):
        fmt += " | <cyan>trace={extra[trace_id]}</cyan>"
    if extra.get("task"):
        fmt += " | <magenta>{extra[task]}</magenta>"
    if extra.get("strategy"):
        fmt += " | <blue>strategy={extra[strategy]}</blue>"

    fmt += " | <level>{message}</level>\n"

    if record.get("exception"):
        fmt += "{exception}\n"

    return fmt


def configure_logging(
    level: str = "INFO",
    format: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format - "human" or "json"
        log_file: Optional file path; file output is always JSON

    Example:
        configure_logging(level="DEBUG", format="human")
        configure_logging(level="INFO", format="json", log_file="harvester.log")
    """
    logger.remove()

    json_output = format == "json"
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=json_formatter if json_output else human_readable_formatter,
        colorize=not json_output,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        logger.add(
            log_file,
            level=level.upper(),
            format=json_formatter,
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )


log = StructuredLogger()

