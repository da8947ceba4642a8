"""Logging configuration for the library."""

import logging
from logging.config import dictConfig

from neighbors.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure library logging."""
    level = (level or settings.log_level).upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "generic": {
                    "format": settings.log_format_general,
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "generic",
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            "loggers": {
                "neighbors": {
                    "level": level,
                },
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger instance by name."""
    return logging.getLogger(name)
