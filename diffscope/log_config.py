"""Structlog configuration shared by diffscope and the libraries it runs."""

from __future__ import annotations

import logging
import logging.config
import sys

import structlog

from diffscope.settings import settings

# Library loggers routed through the structlog formatter, with the lowest
# level each may log at. Uvicorn's access log is off; requests are logged by
# the request middleware instead.
_LIBRARY_FLOORS = {
    "uvicorn": logging.DEBUG,
    "uvicorn.error": logging.DEBUG,
    "watchdog": logging.WARNING,
}


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging() -> None:
    """Configure structlog and stdlib logging from DIFFSCOPE_LOG_* settings.

    Everything goes to stderr so stdout stays free for the CLI.
    """
    log_level = getattr(logging, settings.log_level(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_renderer(settings.log_format()),
        foreign_pre_chain=shared_processors,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"structlog": {"()": lambda: formatter}},
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "structlog",
                    "stream": sys.stderr,
                }
            },
            "root": {"handlers": ["stderr"], "level": log_level},
            "loggers": {
                name: {
                    "handlers": ["stderr"],
                    "level": max(log_level, floor),
                    "propagate": False,
                }
                for name, floor in _LIBRARY_FLOORS.items()
            },
        }
    )
