"""tiletune: tile configuration autotuning for generated GPU kernels.

Searches the tiling space of a parameterized computation bucket by bucket,
scores each bucket with a pluggable objective function, and stores the
best configurations per hardware target for reuse.
"""

from tiletune.schedule import (
    BucketInfo,
    Dimension,
    FileTileConfigDatabase,
    InMemoryTileConfigDatabase,
    ScheduleConfigManager,
    SearchAxis,
    TileConfig,
    TileConfigDatabase,
    get_config,
    get_schedule_config_manager,
    get_tile_size_config,
    heuristic_tile_config,
)

from tiletune.search import (
    CallableMeasurer,
    ExhaustiveObjectiveFunc,
    Measurer,
    ScheduleConfigSearcher,
    SearchResult,
    TimingMeasurer,
    WeightedSamplingTrialObjectiveFunc,
)

# Hardware targets
from tiletune.hardware import (
    Target,
    get_default_target,
)

# Type-safe enums
from tiletune.constants import (
    Aggregation,
    BucketStatus,
    SchedulePolicy,
)

from tiletune.utils.exceptions import (
    ConfigurationError,
    ConstructionError,
    DatabaseIOError,
    MeasurementError,
    SearchExhaustedError,
    TileTuneError,
)

__version__ = "0.1.0"

__all__ = [
    # Search space and heuristic
    "Dimension",
    "BucketInfo",
    "SearchAxis",
    "TileConfig",
    "get_tile_size_config",
    "heuristic_tile_config",
    # Database and manager
    "TileConfigDatabase",
    "InMemoryTileConfigDatabase",
    "FileTileConfigDatabase",
    "ScheduleConfigManager",
    "get_schedule_config_manager",
    "get_config",
    # Search
    "Measurer",
    "CallableMeasurer",
    "TimingMeasurer",
    "WeightedSamplingTrialObjectiveFunc",
    "ExhaustiveObjectiveFunc",
    "ScheduleConfigSearcher",
    "SearchResult",
    # Hardware
    "Target",
    "get_default_target",
    # Enums
    "SchedulePolicy",
    "Aggregation",
    "BucketStatus",
    # Errors
    "TileTuneError",
    "ConstructionError",
    "ConfigurationError",
    "MeasurementError",
    "SearchExhaustedError",
    "DatabaseIOError",
]
