"""Structured logging: structlog events rendered by a stdlib logging handler."""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog

# Third-party loggers that are chatty at INFO
_LIBRARY_LEVELS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str, stream: TextIO) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=stream.isatty())


def setup_logging(level: str | None = None, *, stream: TextIO | None = None) -> None:
    """Route structlog and stdlib logging through one handler on *stream*.

    Environment:
        DEPSENTINEL_LOG_LEVEL  - minimum level (default: INFO)
        DEPSENTINEL_LOG_FORMAT - console | json (default: console)

    *level* overrides the environment (the CLI's ``--verbose``). The handler
    writes to stderr by default; stdout carries command output. Calling this
    again replaces the previous handler.
    """
    level_name = (level or os.environ.get("DEPSENTINEL_LOG_LEVEL", "INFO")).upper()
    log_format = os.environ.get("DEPSENTINEL_LOG_FORMAT", "console").lower()
    stream = stream or sys.stderr

    processors = _shared_processors()
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_format, stream),
        ],
    )
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level_name)
    logging.getLogger("depsentinel").setLevel(level_name)
    for name, lib_level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(lib_level)

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
