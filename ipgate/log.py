"""Logging helpers for ipgate."""
from __future__ import annotations

import logging
from logging.config import dictConfig

from .config import LoggingConfig
from .ipacl import DiagnosticSink

DIAGNOSTICS_LOGGER = "ipgate.diagnostics"


def configure_logging(config: LoggingConfig) -> None:
    """Configure global logging based on configuration values."""

    level = getattr(logging, config.level.upper(), logging.INFO)
    log_format = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    handler_config = {
        "level": level,
        "formatter": "standard",
    }

    if config.file:
        handler_config.update(
            {
                "class": "logging.handlers.WatchedFileHandler",
                "filename": config.file,
                "encoding": "utf-8",
            }
        )
    else:
        handler_config["class"] = "logging.StreamHandler"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": log_format,
                }
            },
            "handlers": {
                "default": handler_config,
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )

    logging.getLogger("uvicorn.access").disabled = not config.access_log


def logging_sink(level: str = "INFO") -> DiagnosticSink:
    """Build a diagnostic sink reporting malformed allowlist entries."""
    logger = logging.getLogger(DIAGNOSTICS_LOGGER)
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    def _sink(entry: str, reason: str) -> None:
        logger.log(numeric_level, "Allowlist entry is invalid: %s (%s)", entry, reason)

    return _sink


__all__ = ["DIAGNOSTICS_LOGGER", "configure_logging", "logging_sink"]
