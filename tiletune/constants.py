"""Centralized constants and enums for tiletune.

This module provides documented constants and type-safe enums used throughout
the codebase to ensure consistency and traceability.
"""

from enum import Enum


# =============================================================================
# ENUMS - Type-safe alternatives to string literals
# =============================================================================


class SchedulePolicy(str, Enum):
    """Policy used by the schedule config manager to produce a tile config.

    DEFAULT: Always recompute from the tiling heuristic, ignore the database
    DATABASE: Consult the database first, search (or heuristic) on a miss

    Using str enum allows plain string comparisons:
        policy == "default"  # Still works
        policy == SchedulePolicy.DEFAULT  # Type-safe alternative
    """

    DEFAULT = "default"
    DATABASE = "database"


class Aggregation(str, Enum):
    """How per-trial costs are reduced to a single bucket score.

    MEAN: Weighted mean over all drawn trials
    MIN: Best (lowest) trial cost
    """

    MEAN = "mean"
    MIN = "min"


class BucketStatus(str, Enum):
    """Lifecycle state of a bucket inside a search.

    PENDING -> EVALUATING -> {SCORED, FAILED}
    """

    PENDING = "pending"
    EVALUATING = "evaluating"
    SCORED = "scored"
    FAILED = "failed"


# =============================================================================
# SHAPES
# =============================================================================

# Shape value marking an axis whose size is only known at runtime
DYNAMIC_DIM = -1


# =============================================================================
# TILING HEURISTIC
# =============================================================================

# (exclusive upper lower-bound, tile width) pairs, checked in order.
# Lower bounds at or past the last breakpoint use TILE_WIDTH_MAX.
TILE_WIDTH_BREAKPOINTS = (
    (128, 32),
    (512, 128),
    (1024, 256),
    (2048, 512),
)
TILE_WIDTH_MAX = 1024


# =============================================================================
# DATABASE
# =============================================================================

# On-disk format version for FileTileConfigDatabase; bump when layout changes
DATABASE_FORMAT_VERSION = 1

# Default file name inside the cache directory
DATABASE_FILE_NAME = "tile_configs.json"
