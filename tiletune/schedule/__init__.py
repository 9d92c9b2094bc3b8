"""Tile config scheduling: search space, heuristic, database and manager.

This module provides:
- The search-space model (Dimension, BucketInfo)
- The tiling heuristic and bucket partitioning
- Tile config storage keyed by hardware target and bucket
- The schedule config manager choosing between heuristic and database
"""

from tiletune.schedule.bucket import (
    BucketInfo,
    BucketKey,
    Dimension,
)
from tiletune.schedule.tile_config import (
    TileConfig,
    TileConfigMap,
)
from tiletune.schedule.tiling import (
    SearchAxis,
    build_bucket_info,
    get_tile_size_config,
    heuristic_tile_config,
    iter_bucket_infos,
    iter_buckets,
    shape_for_bucket,
)
from tiletune.schedule.database import (
    FileTileConfigDatabase,
    InMemoryTileConfigDatabase,
    TileConfigDatabase,
    encode_entry_name,
)
from tiletune.schedule.manager import (
    ScheduleConfigManager,
    get_config,
    get_schedule_config_manager,
    reset_schedule_config_manager,
)

__all__ = [
    # Search space
    "Dimension",
    "BucketInfo",
    "BucketKey",
    # Tile configs
    "TileConfig",
    "TileConfigMap",
    # Heuristic
    "SearchAxis",
    "get_tile_size_config",
    "iter_buckets",
    "iter_bucket_infos",
    "build_bucket_info",
    "shape_for_bucket",
    "heuristic_tile_config",
    # Database
    "TileConfigDatabase",
    "InMemoryTileConfigDatabase",
    "FileTileConfigDatabase",
    "encode_entry_name",
    # Manager
    "ScheduleConfigManager",
    "get_schedule_config_manager",
    "reset_schedule_config_manager",
    "get_config",
]
