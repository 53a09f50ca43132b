"""Logging utilities for mdimgsize.

Every diagnostic the image pipeline emits (unresolvable local paths, failed
or oversized probes, corrected options) goes through this module:
- info/debug lines go to stdout without decoration
- warnings/errors go to stderr tagged with the package name and the level
- callers de-duplicate before logging; this module never filters repeats
"""

import logging
import sys

LOGGER_NAME = "mdimgsize"

# Module-level logger
_logger: logging.Logger | None = None


class DiagnosticFormatter(logging.Formatter):
    """Plain text below WARNING, ``[package] Level: message`` from WARNING up.

    The tag is the top-level part of the record's logger name, so child
    loggers such as ``mdimgsize.watch`` are tagged ``[mdimgsize]`` too.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.levelno < logging.WARNING:
            return message
        package = record.name.split(".", 1)[0]
        return f"[{package}] {record.levelname.capitalize()}: {message}"


def _stream_handler(stream, min_level: int, max_level: int | None = None) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(min_level)
    if max_level is not None:
        handler.addFilter(lambda record: record.levelno < max_level)
    handler.setFormatter(DiagnosticFormatter())
    return handler


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure logging for mdimgsize.

    Args:
        verbose: If True, show debug-level messages. Otherwise, show info and above.

    Returns:
        The configured logger instance.
    """
    global _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.addHandler(_stream_handler(sys.stdout, logging.DEBUG, max_level=logging.WARNING))
    logger.addHandler(_stream_handler(sys.stderr, logging.WARNING))

    # Image diagnostics stay on these handlers even when the embedding
    # application configures the root logger
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the mdimgsize logger, initializing with defaults if needed."""
    global _logger
    if _logger is None:
        _logger = setup_logging(verbose=False)
    return _logger


def debug(msg: str) -> None:
    """Log a debug message (only shown with --verbose)."""
    get_logger().debug(msg)


def info(msg: str) -> None:
    get_logger().info(msg)


def warning(msg: str) -> None:
    """Log a warning; shown on stderr as ``[mdimgsize] Warning: ...``."""
    get_logger().warning(msg)


def error(msg: str) -> None:
    get_logger().error(msg)
