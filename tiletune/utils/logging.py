"""Logging utilities for tiletune.

Provides the package logger plus consistent logging of soft failures:
trials that could not be measured and buckets skipped by a search.
"""

import logging
import os
import sys
import threading
from typing import Optional

LOG_LEVEL_ENV = "TILETUNE_LOG_LEVEL"

_logger: Optional[logging.Logger] = None
_logger_lock = threading.Lock()
_soft_failures_seen: set[str] = set()  # Operations that have already soft-failed

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _level_from_env() -> int:
    """Log level named by $TILETUNE_LOG_LEVEL, WARNING if unset or invalid."""
    raw = os.environ.get(LOG_LEVEL_ENV, "WARNING")
    name = raw.strip().upper()
    if name not in _VALID_LEVELS:
        print(
            f"Warning: Invalid {LOG_LEVEL_ENV}='{raw}'. "
            f"Valid values: {', '.join(_VALID_LEVELS)}. Defaulting to WARNING.",
            file=sys.stderr,
        )
        name = "WARNING"
    return getattr(logging, name)


def get_logger() -> logging.Logger:
    """Get the tiletune logger (thread-safe).

    The level is read once from TILETUNE_LOG_LEVEL (DEBUG, INFO, WARNING,
    ERROR or CRITICAL, case-insensitive; default WARNING). Module loggers
    created with ``logging.getLogger(__name__)`` inside the package are its
    children and share its handler.

    Returns:
        The configured "tiletune" logger.
    """
    global _logger
    if _logger is not None:
        return _logger
    with _logger_lock:
        if _logger is None:
            logger = logging.getLogger("tiletune")
            logger.setLevel(_level_from_env())
            if not logger.handlers:
                handler = logging.StreamHandler()
                handler.setFormatter(
                    logging.Formatter("%(name)s - %(levelname)s - %(message)s")
                )
                logger.addHandler(handler)
            _logger = logger
    return _logger


def log_soft_failure(
    operation: str,
    exception: Exception,
    context: Optional[str] = None,
) -> None:
    """Log a recovered failure (excluded trial or skipped bucket).

    The first soft failure of an operation is logged at WARNING, later ones
    at DEBUG so a search over many bad configs does not flood the output.

    Args:
        operation: What failed, e.g. "weighted_sampling trial".
        exception: The exception that was recovered from.
        context: Optional detail such as the bucket bounds.
    """
    with _logger_lock:
        first = operation not in _soft_failures_seen
        _soft_failures_seen.add(operation)

    parts = [f"{operation}: soft failure ({type(exception).__name__}: {exception})"]
    if first:
        parts.append(" (first occurrence, further failures logged at DEBUG)")
    if context:
        parts.append(f" | context: {context}")
    parts.append(", skipping")

    get_logger().log(logging.WARNING if first else logging.DEBUG, "".join(parts))
