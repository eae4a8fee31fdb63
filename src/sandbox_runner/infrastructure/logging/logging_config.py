"""
Logging configuration for Sandbox Runner.

structlog on top of the standard library logging module. Text output is a
single colored line per event with sorted key=value context; JSON output is
one object per line for log aggregation.
"""

import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.types import EventDict, Processor

LEVEL_COLORS = {
    "debug": "\033[36m",
    "info": "\033[32m",
    "warning": "\033[33m",
    "error": "\033[31m",
    "critical": "\033[35m",
}
RESET = "\033[0m"


def render_text(logger: Any, method_name: str, event_dict: EventDict) -> str:
    """
    Render an event as ``[timestamp] [LEVEL] [logger] message key=value ...``.

    Example:
        [2025-01-14 10:30:45] [INFO] [sandbox_runner.application.services.execution_service] Execution finished outcome=success
    """
    timestamp = event_dict.pop("timestamp", "")
    level = str(event_dict.pop("level", method_name))
    logger_name = event_dict.pop("logger", None)
    message = event_dict.pop("event", "")
    exception = event_dict.pop("exception", None)
    event_dict.pop("stack_info", None)

    color = LEVEL_COLORS.get(level.lower(), "")
    parts = []
    if timestamp:
        parts.append(f"[{timestamp}]")
    parts.append(f"[{color}{level.upper()}{RESET if color else ''}]")
    if logger_name and logger_name != "root":
        parts.append(f"[{logger_name}]")
    parts.append(str(message))

    for key, value in sorted(event_dict.items()):
        if isinstance(value, (str, int, float, bool)) or value is None:
            parts.append(f"{key}={value}")
        else:
            parts.append(f"{key}={value!r}")

    line = " ".join(parts)
    if exception:
        line += "\n" + exception
    return line


def configure_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "text" (default) or "json"
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        force=True,
    )

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(render_text)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None, **context) -> structlog.stdlib.BoundLogger:
    """
    Get a logger, optionally with bound context.

    Example:
        logger = get_logger(__name__)
        logger.info("Container started", container_id="abc123")
    """
    if name:
        return structlog.get_logger(name, **context)
    return structlog.get_logger(**context)


def bound_context(**context):
    """
    Bind context to every log event emitted inside a ``with`` block.

    Example:
        with bound_context(experience_id="experience-1"):
            logger.info("Running command")
    """
    return structlog.contextvars.bound_contextvars(**context)
