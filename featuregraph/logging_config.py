"""Centralized logging configuration for featuregraph.

Library modules call ``get_logger(__name__)`` and log through the standard
library. ``configure_logging`` routes those records through structlog's
``ProcessorFormatter`` so that both stdlib and structlog loggers share one
human-readable or JSON output.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def get_logger(name: str) -> logging.Logger:
    """Return a stdlib logger for ``name``."""
    return logging.getLogger(name)


def configure_logging(
    level: str = "INFO",
    format: str = "human",
    file: Optional[str] = None,
) -> None:
    """Configure root logging and structlog.

    Args:
        level: Logging level name (e.g., "DEBUG", "INFO")
        format: "human" for console output or "json" for one JSON object per line
        file: Optional path to an additional log file
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file:
        path = Path(file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # SQL echo is controlled by DatabaseConfig.echo
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
