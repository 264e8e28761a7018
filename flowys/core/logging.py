"""Structured logging for the engine.

structlog renders over stdlib ``logging``. Run-scoped keys (execution id,
workflow id, owner) are bound with ``bind_run_context`` and merged into every
log line emitted while that run is in progress, including handler logs.
"""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import structlog

from flowys.core.config import Settings


def _handlers(settings: Settings, level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def _renderer(settings: Settings):
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=False,
        pad_event=35,
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(settings: Settings) -> None:
    """Configure structured logging based on settings."""
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", level=level, handlers=_handlers(settings, level))

    json_output = settings.log_format == "json"
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name if json_output else None,
        structlog.processors.TimeStamper(fmt="iso" if json_output else "%H:%M:%S"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _renderer(settings),
    ]

    structlog.configure(
        processors=[p for p in processors if p is not None],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


@contextmanager
def bind_run_context(execution_id: str, workflow_id: Optional[str] = None,
                     owner_id: Optional[str] = None) -> Iterator[None]:
    """Attach run identifiers to every log line inside the block."""
    keys = {"execution_id": execution_id, "workflow_id": workflow_id, "owner_id": owner_id}
    with structlog.contextvars.bound_contextvars(**{k: v for k, v in keys.items() if v is not None}):
        yield


def log_execution_time(logger: structlog.BoundLogger, operation: str,
                       start_time: float, end_time: float, **kwargs) -> None:
    logger.info(
        "Operation completed",
        operation=operation,
        execution_time_seconds=round(end_time - start_time, 4),
        **kwargs
    )


def log_api_call(logger: structlog.BoundLogger, provider: str, model: str,
                 operation: str, success: bool, **kwargs) -> None:
    """One line per LLM provider call, success or failure."""
    logger.info(
        "API call completed",
        provider=provider,
        model=model,
        operation=operation,
        success=success,
        **kwargs
    )
