"""Logging for the generator service.

One stdout handler. Production gets one JSON object per line with the service
name as a static field; everything else gets a readable console line.
"""
import logging
import logging.config
import sys
from typing import Dict, Any, Optional

from .settings import Settings, get_settings

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that are chatty at INFO: one line per HTTP call / SQL statement
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


def _formatter(service_name: Optional[str], production: bool) -> Dict[str, Any]:
    if production:
        return {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            "datefmt": DATE_FORMAT,
            "static_fields": {"service": service_name} if service_name else {},
        }
    prefix = f"[{service_name}] " if service_name else ""
    return {
        "format": f"%(asctime)s {prefix}[%(levelname)s] %(name)s: %(message)s",
        "datefmt": DATE_FORMAT,
    }


def get_logging_config(service_name: str = None, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Build the dictConfig for ``service_name`` under the current environment."""
    settings = settings or get_settings()
    production = settings.environment == "production"
    formatter_name = "json" if production else "console"

    loggers = {
        "autopulse": {"level": settings.log_level, "handlers": ["console"], "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING", "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {formatter_name: _formatter(service_name, production)},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.log_level,
                "formatter": formatter_name,
                "stream": sys.stdout,
            }
        },
        "loggers": loggers,
        "root": {"level": settings.log_level, "handlers": ["console"]},
    }


def setup_logging(service_name: str = None, settings: Optional[Settings] = None) -> None:
    """Configure logging using dictConfig."""
    logging.config.dictConfig(get_logging_config(service_name, settings))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
