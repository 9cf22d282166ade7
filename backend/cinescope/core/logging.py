"""
Logging setup — called once from the application entry point and the CLI.
"""
import logging
from logging.config import dictConfig

from cinescope.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Route every ``cinescope.*`` logger to stderr at the configured level."""
    level = (level or settings.LOG_LEVEL).upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "cinescope": {
                    "handlers": ["console"],
                    "level": level,
                    "propagate": False,
                },
                "httpx": {"level": "WARNING"},
            },
        }
    )
    logging.getLogger("cinescope").debug("Logging configured at %s", level)
