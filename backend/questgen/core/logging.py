"""Centralized logging configuration."""
from __future__ import annotations

import logging
from logging.config import dictConfig

from questgen.core.context import get_pipeline_stage, get_request_id

# Third-party loggers that echo every HTTP exchange with the generation backend.
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


class RequestContextFilter(logging.Filter):
    """Attach request_id and pipeline stage to every record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - minimal logic
        record.request_id = get_request_id() or "-"
        record.stage = get_pipeline_stage() or "-"
        return True


def configure_logging(*, log_level: str = "INFO") -> None:
    """Configure service logging once at startup."""
    if getattr(configure_logging, "_configured", False):
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(stage)s | %(message)s",
                }
            },
            "filters": {
                "request_context": {
                    "()": "questgen.core.logging.RequestContextFilter",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": log_level,
                    "filters": ["request_context"],
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
        }
    )

    logging.getLogger(__name__).debug("Logging configured at %s", log_level)
    setattr(configure_logging, "_configured", True)
