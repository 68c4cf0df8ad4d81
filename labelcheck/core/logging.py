"""
Structured logging with structlog
"""
import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict


def add_severity_level(_logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add a severity field for cloud logging compatibility"""
    if method_name == "warn":
        event_dict["severity"] = "WARNING"
    else:
        event_dict["severity"] = method_name.upper()
    return event_dict


def setup_logging(log_level: str = "INFO", is_debug: bool = False) -> None:
    """
    Configure structured logging

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        is_debug: Human readable console output instead of JSON
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_severity_level,
    ]

    # Debug: pretty console output, production: JSON
    if is_debug:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """
    Return a logger for a module

    Args:
        name: Module name

    Returns:
        structlog logger
    """
    return structlog.get_logger(name)


def bind_run_context(**values: Any) -> None:
    """Attach per-run fields (workflow_id, filename) to every log event of the current task"""
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context() -> None:
    """Drop per-run fields bound with bind_run_context"""
    structlog.contextvars.clear_contextvars()
