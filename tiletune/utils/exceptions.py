"""Custom exceptions for tiletune.

This module provides a hierarchy of exceptions for specific error conditions,
enabling more precise exception handling throughout the codebase.
"""


class TileTuneError(Exception):
    """Base exception for all tiletune errors."""

    pass


class ConstructionError(TileTuneError, ValueError):
    """Malformed search-space input.

    Raised when a Dimension or BucketInfo is built with inconsistent bounds
    or sampling weights. The caller must fix its inputs.
    """

    pass


class ConfigurationError(TileTuneError, ValueError):
    """Invalid engine configuration, such as an unknown policy name."""

    pass


class MeasurementError(TileTuneError):
    """A trial configuration could not be measured.

    Raised by measurers when a candidate cannot be executed or times out.
    Objective functions recover from it by excluding the trial; it only
    escapes an evaluation when every trial of a bucket failed.
    """

    pass


class SearchExhaustedError(TileTuneError):
    """Every bucket of a search failed, so no configuration was produced."""

    pass


class SearchAbortedError(SearchExhaustedError):
    """A search was aborted before any bucket was scored."""

    pass


class DatabaseIOError(TileTuneError, OSError):
    """Reading or writing the tile config database failed."""

    pass
