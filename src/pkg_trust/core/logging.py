"""Logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any, Mapping

import structlog
from structlog.types import EventDict

MASK = "****"
SECRET_KEY_MARKERS = ("password", "client_secret", "assertion")


def mask_secrets(parameters: Mapping[str, Any]) -> dict[str, Any]:
    """
    Copy of `parameters` with every secret-bearing value replaced by MASK.

    A key is secret-bearing when it contains one of SECRET_KEY_MARKERS.
    """
    return {
        key: MASK if any(marker in key.lower() for marker in SECRET_KEY_MARKERS) else value
        for key, value in parameters.items()
    }


def add_library_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("library", "pkg-trust")
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog for JSON output through the stdlib root logger.

    The library itself never calls this; hosts and the CLI do.

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_library_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # urllib3 logs full URLs at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("key_set_fetched", url="https://auth.example.com/token_keys")
    """
    return structlog.get_logger(name)
