"""
LiveSignals Logging Configuration
=================================

Logging for the pipeline, the relay worker and the CLI. Console output goes
through rich on stderr, so ``signals --json`` keeps stdout clean. File output
is rotated JSON lines. Component loggers stamp every record with the
component name and, when known, the item id and upstream source.
"""

import json
import logging
import logging.handlers
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler


ROOT_LOGGER = "livesignals"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

_CONTEXT_FIELDS = ("component", "item_id", "source")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Component context is promoted to top-level keys; other ``extra`` values
    are nested under ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        for name in _CONTEXT_FIELDS:
            if name in extra:
                entry[name] = extra.pop(name)
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def _console_handler(structured: bool) -> logging.Handler:
    if structured:
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        return handler
    return RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format="[%H:%M:%S]",
    )


def setup_logger(
    name: str = ROOT_LOGGER,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    structured: bool = False,
    max_file_size: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """Attach console and file handlers to ``name``, replacing earlier ones.

    Args:
        name: Logger name
        level: Logging level name
        log_file: Rotating JSON log file (optional)
        console: Whether to log to the console
        structured: JSON instead of rich output on the console
        max_file_size: Rotation threshold in bytes
        backup_count: Rotated files kept

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    if console:
        logger.addHandler(_console_handler(structured))

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


class ComponentLogger(logging.LoggerAdapter):
    """Adapter merging component context under any per-call ``extra``."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger_for_component(
    component_name: str,
    item_id: Optional[str] = None,
    source: Optional[str] = None,
) -> ComponentLogger:
    """Logger under ``livesignals.<component_name>`` carrying component context.

    Args:
        component_name: Component name (e.g. 'source_fetcher', 'worker')
        item_id: Feed item being handled (optional)
        source: Upstream source label (optional)
    """
    context: Dict[str, Any] = {"component": component_name}
    if item_id:
        context["item_id"] = item_id
    if source:
        context["source"] = source
    return ComponentLogger(logging.getLogger(f"{ROOT_LOGGER}.{component_name}"), context)


def configure_application_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/livesignals.log",
    enable_console: bool = True,
    structured_logging: bool = False,
) -> None:
    """Configure the ``livesignals`` logger tree for the CLI and the worker."""
    setup_logger(
        name=ROOT_LOGGER,
        level=log_level,
        log_file=log_file,
        console=enable_console,
        structured=structured_logging,
    )

    # aiohttp access lines duplicate the worker's own request logging
    for noisy in ("aiohttp.access", "aiohttp.client", "aiohttp.server"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class PerformanceLogger:
    """Times a block and logs its outcome with ``elapsed_ms``.

    Failures are logged at warning level and the exception propagates.
    """

    def __init__(self, logger: logging.LoggerAdapter, operation: str, **context: Any):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.elapsed_ms: Optional[int] = None
        self._started: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self._started = time.monotonic()
        self.logger.debug(f"Starting {self.operation}", extra=dict(self.context))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed_ms = int((time.monotonic() - self._started) * 1000)
        context = {**self.context, "elapsed_ms": self.elapsed_ms, "success": exc_type is None}

        if exc_type is None:
            self.logger.info(f"Completed {self.operation} in {self.elapsed_ms}ms", extra=context)
        else:
            self.logger.warning(
                f"Failed {self.operation} after {self.elapsed_ms}ms: {exc_val}", extra=context
            )
