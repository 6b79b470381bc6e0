"""
Structured logging configuration for fieldvault.

Configures structlog to work alongside stdlib logging so that both
``logging.getLogger()`` (core modules) and ``structlog.get_logger()``
(the lifecycle subscriber) produce consistent output: JSON by default,
human-readable console output in dev mode.

Usage:
    from fieldvault.lib.logging import setup_logging

    setup_logging()  # Call once at application startup

Environment:
    FIELDVAULT_DEV_MODE=1   console renderer
    LOG_LEVEL               root level (default INFO)
"""

import logging
import os
import sys

import structlog


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and stdlib logging.

    Args:
        level: Log level name. Falls back to LOG_LEVEL, then INFO.
    """
    dev_mode = os.environ.get("FIELDVAULT_DEV_MODE") == "1"
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if dev_mode:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # SQL echo is noisy and may carry ciphertext
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


__all__ = ["setup_logging"]
