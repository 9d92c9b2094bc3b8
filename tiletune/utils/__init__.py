"""Utility functions for tiletune."""

from tiletune.utils.exceptions import (
    ConfigurationError,
    ConstructionError,
    DatabaseIOError,
    MeasurementError,
    SearchAbortedError,
    SearchExhaustedError,
    TileTuneError,
)
from tiletune.utils.logging import (
    get_logger,
    log_soft_failure,
)

__all__: list[str] = [
    # Exceptions
    "TileTuneError",
    "ConstructionError",
    "ConfigurationError",
    "MeasurementError",
    "SearchExhaustedError",
    "SearchAbortedError",
    "DatabaseIOError",
    # Logging
    "get_logger",
    "log_soft_failure",
]
