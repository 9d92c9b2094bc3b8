"""Tiling heuristic and bucket partitioning.

The scan range of each named axis is split into buckets whose width grows
with the bucket's lower bound (see ``get_tile_size_config``). The
cross-product of per-axis buckets is the set of regions a search visits.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

import numpy as np

from tiletune.constants import DYNAMIC_DIM, TILE_WIDTH_BREAKPOINTS, TILE_WIDTH_MAX
from tiletune.schedule.bucket import BucketInfo, Dimension
from tiletune.schedule.tile_config import TileConfig
from tiletune.utils.exceptions import ConstructionError

# Maps the offsets of a bucket to their sampling weights
WeightFn = Callable[[np.ndarray], Sequence[float]]


def get_tile_size_config(dimension_lower: int) -> int:
    """Tile width for a bucket starting at ``dimension_lower``.

    Widths grow geometrically with the lower bound:

        < 128 -> 32, < 512 -> 128, < 1024 -> 256, < 2048 -> 512, else 1024

    Args:
        dimension_lower: Lower bound of the bucket.

    Returns:
        Tile width for the bucket.
    """
    for breakpoint, width in TILE_WIDTH_BREAKPOINTS:
        if dimension_lower < breakpoint:
            return width
    return TILE_WIDTH_MAX


def iter_buckets(left_bound: int, right_bound: int) -> Iterator[tuple[int, int]]:
    """Lazily partition ``[left_bound, right_bound]`` into buckets.

    Yields ``(bucket_lower, bucket_width)`` pairs. Each bucket starts where
    the previous one ended, so the buckets cover the range without gaps.
    Iteration stops once the next lower bound passes ``right_bound``; a
    range with ``left_bound == right_bound`` yields exactly one bucket.

    Calling the function again restarts the partition from scratch.
    """
    lower = left_bound
    while lower <= right_bound:
        width = get_tile_size_config(lower)
        yield lower, width
        lower += width


@dataclass(frozen=True)
class SearchAxis:
    """A named axis with its full scan range.

    Attributes:
        tag: Axis label, e.g. "S" or "R".
        left_bound: First value of the scan range (inclusive).
        right_bound: Last value of the scan range (inclusive).
        is_dynamic: Whether the axis size is only known at runtime. Dynamic
            axes span a whole tile per bucket; static axes collapse to the
            bucket's lower bound.
        weight_fn: Optional mapping from a bucket's offsets to sampling
            weights. Uniform weights are used when omitted.
    """

    tag: str
    left_bound: int
    right_bound: int
    is_dynamic: bool = False
    weight_fn: Optional[WeightFn] = None

    def __post_init__(self) -> None:
        if self.left_bound > self.right_bound:
            raise ConstructionError(
                f"Axis '{self.tag}' has left_bound {self.left_bound} "
                f"> right_bound {self.right_bound}"
            )

    def buckets(self) -> Iterator[tuple[int, int]]:
        return iter_buckets(self.left_bound, self.right_bound)

    def bucket_width(self, lower: int) -> int:
        """Number of offsets the bucket starting at ``lower`` spans."""
        return get_tile_size_config(lower) if self.is_dynamic else 1

    def dimension(self, lower: int) -> Dimension:
        """Build the Dimension of the bucket starting at ``lower``."""
        width = self.bucket_width(lower)
        upper = lower + width - 1
        if self.weight_fn is None:
            return Dimension.uniform(lower, upper, self.tag, self.is_dynamic)
        offsets = np.arange(lower, upper + 1, dtype=np.int64)
        weights = tuple(float(w) for w in self.weight_fn(offsets))
        return Dimension(lower, upper, self.tag, self.is_dynamic, weights)


def build_bucket_info(axes: Sequence[SearchAxis], lowers: Sequence[int]) -> BucketInfo:
    """Build the bucket with the given per-axis lower bounds.

    Raises:
        ConstructionError: If the number of lower bounds does not match.
    """
    if len(axes) != len(lowers):
        raise ConstructionError(
            f"Expected {len(axes)} lower bounds, got {len(lowers)}"
        )
    return BucketInfo(tuple(axis.dimension(lower) for axis, lower in zip(axes, lowers)))


def iter_bucket_infos(axes: Sequence[SearchAxis]) -> Iterator[BucketInfo]:
    """Cross-product of per-axis buckets, smallest lower bounds first.

    The first axis varies slowest, matching nested loops over the axes in
    order.
    """
    if not axes:
        raise ConstructionError("At least one search axis is required")
    per_axis = [[lower for lower, _ in axis.buckets()] for axis in axes]
    for lowers in itertools.product(*per_axis):
        yield build_bucket_info(axes, lowers)


def shape_for_bucket(bucket_info: BucketInfo) -> tuple[int, ...]:
    """Problem shape used to build a bucket's computation.

    Dynamic axes are marked with ``DYNAMIC_DIM``; static axes take the
    bucket's lower bound.
    """
    return tuple(
        DYNAMIC_DIM if dim.is_dynamic else dim.lower_bound for dim in bucket_info
    )


def heuristic_tile_config(bucket_info: BucketInfo) -> TileConfig:
    """Tile config from the heuristic table, without measuring.

    Each axis takes ``get_tile_size_config`` of its lower bound, clamped into
    the dimension's bounds. The score is None since nothing was measured.
    """
    sizes = tuple(
        min(max(get_tile_size_config(dim.lower_bound), dim.lower_bound), dim.upper_bound)
        for dim in bucket_info
    )
    return TileConfig(tile_sizes=sizes)
