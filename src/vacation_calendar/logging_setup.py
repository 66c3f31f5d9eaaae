"""Logging configuration."""

from __future__ import annotations

import logging.config
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from vacation_calendar.config import SchedulerSettings, get_settings


def build_logging_config(settings: SchedulerSettings) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
            "json": {
                "()": JsonFormatter,
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": settings.log_format,
                # stdout belongs to the MCP stdio transport
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "vacation_calendar": {
                "handlers": ["console"],
                "level": settings.log_level.upper(),
                "propagate": False,
            },
        },
    }


def configure_logging(settings: SchedulerSettings | None = None) -> None:
    logging.config.dictConfig(build_logging_config(settings or get_settings()))
