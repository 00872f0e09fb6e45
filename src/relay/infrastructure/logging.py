"""Structlog configuration for the outbox relay.

Every event carries the service name, so dispatcher and janitor output can
be told apart from the business services writing to the same databases.
"""

import logging
import os
import sys
from typing import Literal

import structlog

LogFormat = Literal["auto", "console", "json"]


def _wants_console(log_format: LogFormat) -> bool:
    if log_format != "auto":
        return log_format == "console"
    # FORCE_COLOR=1 enables colors even in non-TTY environments (like Docker)
    force_color = os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes")
    return force_color or sys.stdout.isatty()


def build_processors(
    service_name: str,
    log_format: LogFormat = "auto",
) -> list[structlog.types.Processor]:
    """Build the processor chain ending in the selected renderer."""

    def add_service_name(_logger, _method_name, event_dict):
        event_dict.setdefault("service", service_name)
        return event_dict

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if _wants_console(log_format):
        return [*shared_processors, structlog.dev.ConsoleRenderer(colors=True)]
    return [
        *shared_processors,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(
    debug: bool = False,
    log_format: LogFormat = "auto",
    service_name: str = "outbox-relay",
) -> None:
    """Configure structlog for the relay process.

    Args:
        debug: Emit debug-level events (per-record appends, skipped polls)
        log_format: "console", "json", or "auto" to pick by terminal
        service_name: Value of the ``service`` key on every event
    """
    structlog.configure(
        processors=build_processors(service_name, log_format),
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
