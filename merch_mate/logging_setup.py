"""Process-wide logging configuration.

INFO and below go to stdout, WARNING and above to stderr. The root level comes
from ``Settings.log_level`` which the ``LOG_LEVEL`` environment variable
overrides.
"""
from __future__ import annotations

import logging
import logging.config

from merch_mate.config import settings


class MaxLevelFilter(logging.Filter):
    """Pass only records at or below ``level``."""

    def __init__(self, level: str | int, **kwargs):
        super().__init__(**kwargs)
        if isinstance(level, str):
            self.level = logging.getLevelName(level.upper())
        else:
            self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self.level


def build_config(level: str) -> dict:
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {'format': '%(asctime)s %(levelname)s %(name)s: %(message)s'},
        },
        'filters': {
            'below_warning': {'()': MaxLevelFilter, 'level': 'INFO'},
        },
        'handlers': {
            'stdout': {
                'class': 'logging.StreamHandler',
                'formatter': 'default',
                'stream': 'ext://sys.stdout',
                'filters': ['below_warning'],
            },
            'stderr': {
                'class': 'logging.StreamHandler',
                'formatter': 'default',
                'stream': 'ext://sys.stderr',
                'level': 'WARNING',
            },
        },
        'loggers': {
            'uvicorn.access': {'level': 'WARNING'},
        },
        'root': {'level': level.upper(), 'handlers': ['stdout', 'stderr']},
    }


def setup_logging(level: str | None = None) -> None:
    logging.config.dictConfig(build_config(level or settings.log_level))
