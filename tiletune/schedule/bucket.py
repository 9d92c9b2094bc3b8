"""Search-space model for tile config tuning.

A ``Dimension`` is one axis of the tiling problem: an inclusive integer range
with a sampling weight per offset. A ``BucketInfo`` is an ordered sequence of
dimensions describing one hyper-rectangular region ("bucket") of the full
space. Buckets are identified by their ``key``, which ignores weights.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

import numpy as np

from tiletune.utils.exceptions import ConstructionError

# (lower_bound, upper_bound, tag, is_dynamic)
DimensionKey = tuple[int, int, str, bool]
BucketKey = tuple[DimensionKey, ...]


@dataclass(frozen=True)
class Dimension:
    """One axis of a bucket.

    Attributes:
        lower_bound: Smallest offset of the axis (inclusive).
        upper_bound: Largest offset of the axis (inclusive).
        tag: Axis label, e.g. "S" (spatial) or "R" (reduce).
        is_dynamic: Whether the axis size is only known at runtime.
        weights: Sampling weight per offset in [lower_bound, upper_bound].
            Weights need not sum to 1; consumers normalize them.

    Raises:
        ConstructionError: If lower_bound > upper_bound, the weight count does
            not match the width, or the weights are negative or all zero.
    """

    lower_bound: int
    upper_bound: int
    tag: str
    is_dynamic: bool
    weights: tuple[float, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        try:
            integral = (
                int(self.lower_bound) == self.lower_bound
                and int(self.upper_bound) == self.upper_bound
            )
        except (TypeError, ValueError):
            integral = False
        if not integral or isinstance(self.lower_bound, bool) or isinstance(self.upper_bound, bool):
            raise ConstructionError(
                f"Dimension '{self.tag}' bounds must be integers, "
                f"got [{self.lower_bound}, {self.upper_bound}]"
            )
        if self.lower_bound > self.upper_bound:
            raise ConstructionError(
                f"Dimension '{self.tag}' has lower_bound {self.lower_bound} "
                f"> upper_bound {self.upper_bound}"
            )
        weights = tuple(float(w) for w in self.weights)
        if len(weights) != self.width:
            raise ConstructionError(
                f"Dimension '{self.tag}' needs {self.width} weights for "
                f"[{self.lower_bound}, {self.upper_bound}], got {len(weights)}"
            )
        if any(not math.isfinite(w) or w < 0 for w in weights):
            raise ConstructionError(
                f"Dimension '{self.tag}' weights must be finite and non-negative"
            )
        if sum(weights) <= 0:
            raise ConstructionError(f"Dimension '{self.tag}' weights sum to zero")
        object.__setattr__(self, "lower_bound", int(self.lower_bound))
        object.__setattr__(self, "upper_bound", int(self.upper_bound))
        object.__setattr__(self, "weights", weights)

    @classmethod
    def uniform(
        cls,
        lower_bound: int,
        upper_bound: int,
        tag: str,
        is_dynamic: bool,
    ) -> Dimension:
        """Create a dimension with equal weight on every offset."""
        width = upper_bound - lower_bound + 1
        if width <= 0:
            raise ConstructionError(
                f"Dimension '{tag}' has lower_bound {lower_bound} "
                f"> upper_bound {upper_bound}"
            )
        return cls(lower_bound, upper_bound, tag, is_dynamic, (1.0 / width,) * width)

    @property
    def width(self) -> int:
        """Number of integer offsets covered by the axis."""
        return self.upper_bound - self.lower_bound + 1

    @property
    def key(self) -> DimensionKey:
        return (self.lower_bound, self.upper_bound, self.tag, self.is_dynamic)

    def offsets(self) -> np.ndarray:
        """All offsets of the axis, in increasing order."""
        return np.arange(self.lower_bound, self.upper_bound + 1, dtype=np.int64)

    def normalized_weights(self) -> np.ndarray:
        """Weights scaled to a probability distribution."""
        w = np.asarray(self.weights, dtype=np.float64)
        return w / w.sum()

    def contains(self, offset: int) -> bool:
        return self.lower_bound <= offset <= self.upper_bound


@dataclass(frozen=True, eq=False)
class BucketInfo:
    """An ordered sequence of dimensions describing one bucket.

    Two buckets compare equal (and hash alike) when their keys match, so
    weights do not affect identity.

    Attributes:
        space: The bucket's dimensions, in axis order.
    """

    space: tuple[Dimension, ...]

    def __post_init__(self) -> None:
        space = tuple(self.space)
        if not space:
            raise ConstructionError("BucketInfo needs at least one dimension")
        for dim in space:
            if not isinstance(dim, Dimension):
                raise ConstructionError(
                    f"BucketInfo space entries must be Dimension, got {type(dim).__name__}"
                )
        object.__setattr__(self, "space", space)

    @property
    def key(self) -> BucketKey:
        """Natural identity of the bucket: (lower, upper, tag, is_dynamic) per axis."""
        return tuple(dim.key for dim in self.space)

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(dim.tag for dim in self.space)

    @classmethod
    def from_key(
        cls,
        key: Sequence[Sequence],
        weights: Optional[Sequence[Sequence[float]]] = None,
    ) -> BucketInfo:
        """Rebuild a bucket from its key.

        Args:
            key: Sequence of (lower, upper, tag, is_dynamic) tuples.
            weights: Optional per-axis weights. Uniform weights are used
                when omitted.

        Returns:
            BucketInfo with the given bounds.
        """
        dims = []
        for i, entry in enumerate(key):
            try:
                lower, upper, tag, is_dynamic = entry
            except (TypeError, ValueError) as e:
                raise ConstructionError(f"Malformed bucket key entry {entry!r}") from e
            if weights is None:
                dims.append(Dimension.uniform(lower, upper, tag, bool(is_dynamic)))
            else:
                dims.append(Dimension(lower, upper, tag, bool(is_dynamic), tuple(weights[i])))
        return cls(tuple(dims))

    def __len__(self) -> int:
        return len(self.space)

    def __iter__(self) -> Iterator[Dimension]:
        return iter(self.space)

    def __getitem__(self, index: int) -> Dimension:
        return self.space[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BucketInfo):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: BucketInfo) -> bool:
        if not isinstance(other, BucketInfo):
            return NotImplemented
        return self.key < other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        parts = [
            f"{d.tag}[{d.lower_bound}, {d.upper_bound}]{'*' if d.is_dynamic else ''}"
            for d in self.space
        ]
        return "BucketInfo(" + ", ".join(parts) + ")"
