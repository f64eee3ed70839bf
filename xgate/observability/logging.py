"""Structured logging configuration."""

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the SDK and its host.

    Sets up structlog with JSON output format and standard processors
    for timestamps, log levels, and context binding.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_settings(
    debug: bool, log_file: str | None = None
) -> TextIO | None:
    """Configure logging from client settings.

    Args:
        debug: Log at DEBUG level when True, INFO otherwise.
        log_file: Append JSON lines to this file instead of stderr.

    Returns:
        The opened log file, which the caller owns, or None.
    """
    level = logging.DEBUG if debug else logging.INFO
    if log_file is None:
        configure_logging(level=level)
        return None
    stream = Path(log_file).open("a", encoding="utf-8")  # noqa: SIM115
    configure_logging(level=level, output=stream)
    return stream


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance.

    Args:
        name: Optional logger name.

    Returns:
        Bound logger instance.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
