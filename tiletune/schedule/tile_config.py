"""Tile configuration produced by a search."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

from tiletune.schedule.bucket import BucketInfo, BucketKey
from tiletune.utils.exceptions import ConstructionError


@dataclass(frozen=True)
class TileConfig:
    """Per-axis tile sizes for one bucket.

    Attributes:
        tile_sizes: One tile/block size per dimension of the bucket, in axis
            order.
        score: Cost of the configuration (lower is better). None when the
            config came from the heuristic and was never measured.
    """

    tile_sizes: tuple[int, ...]
    score: Optional[float] = None

    def __post_init__(self) -> None:
        try:
            sizes = tuple(int(s) for s in self.tile_sizes)
        except (TypeError, ValueError) as e:
            raise ConstructionError(f"Invalid tile sizes {self.tile_sizes!r}") from e
        if not sizes:
            raise ConstructionError("TileConfig needs at least one tile size")
        object.__setattr__(self, "tile_sizes", sizes)
        if self.score is not None:
            object.__setattr__(self, "score", float(self.score))

    @property
    def is_measured(self) -> bool:
        return self.score is not None and math.isfinite(self.score)

    def fits(self, bucket_info: BucketInfo) -> bool:
        """Whether every tile size lies inside its dimension's bounds."""
        if len(self.tile_sizes) != len(bucket_info):
            return False
        return all(dim.contains(size) for dim, size in zip(bucket_info, self.tile_sizes))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        return {"tile_sizes": list(self.tile_sizes), "score": self.score}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TileConfig:
        """Deserialize from JSON."""
        return cls(tile_sizes=tuple(data["tile_sizes"]), score=data.get("score"))

    def __str__(self) -> str:
        return ", ".join(str(s) for s in self.tile_sizes)


# Bucket key -> config, as returned by a database lookup for one target
TileConfigMap = dict[BucketKey, TileConfig]
