# fleetops/logging_config.py
"""structlog setup for the service.

Call ``configure_logging`` once at startup, then use structlog normally::

    log = structlog.get_logger()
    log.info("fleet_task_created", task_id=42)

Development gets coloured console output, every other environment gets
one JSON object per line.
"""
import logging

import structlog
from structlog.typing import Processor


def _resolve_level(level_name: str) -> int:
    return getattr(logging, (level_name or "INFO").upper(), logging.INFO)


def configure_logging(environment: str = "development", level: str = "INFO") -> None:
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == "development":
        final_processors: list[Processor] = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        final_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=shared_processors + final_processors,
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
