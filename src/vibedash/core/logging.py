"""Structured logging for vibe-dash.

Events go through structlog into stdlib logging, where each configured
output (stderr, stdout or a file) has its own level and renderer. The
coordinator binds the name of the running operation, so a warning raised
while reading one project's database says which call it belonged to.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from vibedash.config.models import LoggingConfig, LogOutputConfig

_operation: ContextVar[str | None] = ContextVar("vibedash_operation", default=None)

# Loggers of libraries we drive that are too chatty below WARNING.
_QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


def get_operation() -> str | None:
    return _operation.get()


@contextmanager
def operation_scope(operation: str) -> Iterator[str]:
    """Bind an operation for the body of a ``with`` block.

    The enclosing operation, if any, is restored on exit.
    """
    token = _operation.set(operation)
    try:
        yield operation
    finally:
        _operation.reset(token)


def _add_operation(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    operation = get_operation()
    if operation is not None:
        event_dict.setdefault("operation", operation)
    return event_dict


def _level_number(name: str | None, fallback: int) -> int:
    if not name:
        return fallback
    name = name.upper()
    if name == "WARN":
        name = "WARNING"
    return logging.getLevelNamesMapping().get(name, fallback)


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Set up structlog and the root stdlib logger.

    With ``config`` every entry in ``config.outputs`` becomes one handler.
    Without it a single console (or JSON, with ``json_format``) handler on
    stderr is installed at ``level``. Calling this again replaces the
    previous handlers.
    """
    from vibedash.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level,
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )

    root_level = _level_number(config.level, logging.INFO)
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_operation,  # type: ignore[list-item]
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguration must take effect for loggers created at import time
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for output in config.outputs:
        handler = _open_handler(output.destination)
        handler.setLevel(_level_number(output.level or config.level, root_level))
        handler.setFormatter(_build_formatter(output, pre_chain))
        root.addHandler(handler)


def _open_handler(destination: str) -> logging.Handler:
    if destination == "stderr":
        return logging.StreamHandler(sys.stderr)
    if destination == "stdout":
        return logging.StreamHandler(sys.stdout)
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a", encoding="utf-8")


def _build_formatter(
    output: LogOutputConfig,
    pre_chain: list[structlog.types.Processor],
) -> structlog.stdlib.ProcessorFormatter:
    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        stream = sys.stdout if output.destination == "stdout" else sys.stderr
        on_terminal = output.destination in ("stderr", "stdout") and stream.isatty()
        renderer = structlog.dev.ConsoleRenderer(colors=on_terminal, pad_event_to=0)
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)

