"""
Centralized Logging Configuration for the Reasoning Engine

Structured, event-style logging via structlog:

    logger.info("thought_appended", sequence_id=12, thought_number=3)
"""

import logging
import sys
from typing import Any
from datetime import datetime, timezone
from pathlib import Path

import structlog

from reasoning_config import LOG_LEVEL, LOG_JSON, LOG_FILE


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False
) -> None:
    """
    Configure structlog + stdlib logging for the whole service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logs
        json_logs: Use JSON format for production (better parsing)
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> Any:
    """
    Get a logger instance.

    Usage:
        from logging_config import get_logger

        logger = get_logger(__name__)
        logger.info("sequence_started", sequence_id=seq.id, goal=seq.goal)
    """
    return structlog.get_logger(name)


def log_sequence_transition(
    sequence_id: int,
    from_state: str,
    to_state: str,
    reason: str
) -> None:
    """Log a sequence state transition with structured data"""
    logger = get_logger("sequence_transition")
    logger.info(
        "sequence_transition",
        sequence_id=sequence_id,
        from_state=from_state,
        to_state=to_state,
        reason=reason,
        timestamp=datetime.now(timezone.utc).isoformat()
    )


def log_error(
    error: Exception,
    context: dict | None = None,
    level: str = "ERROR",
    event: str = "error_occurred"
) -> None:
    """Log error with full context and stack trace"""
    logger = get_logger("error_handler")
    log_func = getattr(logger, level.lower(), logger.error)

    log_data = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        log_data.update(context)

    log_func(event, **log_data, exc_info=error)


# Auto-setup on import
setup_logging(level=LOG_LEVEL, log_file=LOG_FILE, json_logs=LOG_JSON)
