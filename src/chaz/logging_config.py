"""Logging configuration for chaz using structlog."""

from __future__ import annotations

import logging
import logging.config
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from pathlib import Path

__all__ = ["flatten", "get_logger", "setup_logging"]

# Libraries that are chatty at INFO, children inherit the level
QUIET_LOGGERS = ("nio", "httpx")


def flatten(text: str) -> str:
    """Collapse newlines so a request or response fits on one log line."""
    return text.replace("\n", " ")


def _formatter(*, colors: bool) -> dict[str, Any]:
    renderer = structlog.dev.ConsoleRenderer(
        colors=colors,
        exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False)
        if colors
        else structlog.dev.plain_traceback,
    )
    return {
        "()": structlog.stdlib.ProcessorFormatter,
        "processors": [structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        "foreign_pre_chain": [structlog.stdlib.add_log_level, structlog.processors.TimeStamper(fmt="iso")],
    }


def setup_logging(level: str = "INFO", log_dir: Path | None = None) -> Path | None:
    """Configure structlog for chaz.

    Logs go to stderr in color. With ``log_dir`` they are also written, without
    color, to a timestamped file in that directory.

    Returns:
        The log file, or None when logging to the console only

    """
    level = level.upper()
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "level": level,
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "colored",
        },
    }

    log_file = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"chaz_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S')}.log"
        handlers["file"] = {
            "level": level,
            "class": "logging.FileHandler",
            "filename": str(log_file),
            "encoding": "utf-8",
            "formatter": "plain",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"plain": _formatter(colors=False), "colored": _formatter(colors=True)},
            "handlers": handlers,
            "loggers": {
                "": {"handlers": list(handlers), "level": level, "propagate": False},
                **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
            },
        },
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    get_logger(__name__).info("Logging initialized", log_file=str(log_file) if log_file else None, level=level)
    return log_file


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
