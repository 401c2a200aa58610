"""Logging configuration for the API and worker processes."""

import logging
import logging.config
import sys
from typing import Any, Dict

from config import settings


def setup_logging() -> None:
    """Configure console logging once per process."""
    level = (settings.LOG_LEVEL or "INFO").upper()
    log_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "simple": {
                "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG" if settings.is_development else "INFO",
                "formatter": "detailed" if settings.is_development else "simple",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
            "botocore": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
    }
    logging.config.dictConfig(log_config)
    logging.getLogger(__name__).info(
        "Logging initialized - environment=%s level=%s", settings.ENVIRONMENT, level
    )
