"""Structured logging configuration."""

import logging
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from api.config import APP_VERSION, Settings, get_settings

# Snapshot and document payloads can be large; log values are cut to this length
MAX_VALUE_LENGTH = 500


def truncate_long_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Shorten oversized string values so a single event stays readable."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
            event_dict[key] = f"{value[:MAX_VALUE_LENGTH]}... ({len(value)} chars)"
    return event_dict


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", "lift-audit")
    event_dict.setdefault("version", APP_VERSION)
    return event_dict


def build_processors(settings: Settings) -> list[Any]:
    """Processor chain for the current environment."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        truncate_long_values,
    ]

    if settings.is_production:
        processors.extend(
            [
                add_app_context,
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ]
        )
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=not settings.is_test,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def setup_logging() -> None:
    """Configure structured logging with structlog."""
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    # Provider calls log their own summary events
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
