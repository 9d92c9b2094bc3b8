"""Search over bucket partitions of the tiling space.

The searcher walks the cross-product of per-axis buckets, hands each bucket
to an objective function and keeps the lowest-scoring one. Buckets move
through ``PENDING -> EVALUATING -> {SCORED, FAILED}``; failed buckets are
skipped. Ties go to the bucket visited first (smallest lower bounds),
whatever order parallel evaluations complete in.

Example:
    >>> from tiletune.schedule import SearchAxis
    >>> from tiletune.search import (
    ...     CallableMeasurer, ScheduleConfigSearcher,
    ...     WeightedSamplingTrialObjectiveFunc,
    ... )
    >>> measurer = CallableMeasurer(lambda comp, cfg: run_and_time(comp, cfg))
    >>> searcher = ScheduleConfigSearcher(
    ...     WeightedSamplingTrialObjectiveFunc(measurer, seed=0),
    ...     axes=[SearchAxis("S", 32, 32), SearchAxis("R", 32, 32, is_dynamic=True)],
    ...     computation_builder=build_reduce_sum,
    ... )
    >>> result = searcher.search()
    >>> result.score, result.config.tile_sizes
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence

from tiletune.config import get_tuning_config
from tiletune.constants import BucketStatus
from tiletune.schedule.bucket import BucketInfo
from tiletune.schedule.tile_config import TileConfig
from tiletune.schedule.tiling import SearchAxis, iter_bucket_infos, shape_for_bucket
from tiletune.search.measurer import TrialConfig
from tiletune.search.objective import BaseObjectiveFunc
from tiletune.utils.exceptions import (
    ConfigurationError,
    MeasurementError,
    SearchAbortedError,
    SearchExhaustedError,
)
from tiletune.utils.logging import log_soft_failure

logger = logging.getLogger(__name__)

ComputationBuilder = Callable[[tuple[int, ...]], Any]


@dataclass
class BucketRecord:
    """Progress of one bucket within a search.

    Attributes:
        index: Visit order of the bucket (used for tie-breaking).
        bucket_info: The bucket.
        status: Current lifecycle state.
        score: Objective score once SCORED.
        best_config: Winning per-axis offsets once SCORED.
        error: Failure message once FAILED.
    """

    index: int
    bucket_info: BucketInfo
    status: BucketStatus = BucketStatus.PENDING
    score: Optional[float] = None
    best_config: Optional[TrialConfig] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SearchResult:
    """Outcome of a search.

    Attributes:
        score: Score of the best bucket.
        config: Best tile config, carrying the same score.
        best_bucket: Bucket the best config was found in.
        records: Final state of every bucket, in visit order.
        aborted: Whether the search was aborted before visiting every bucket.
    """

    score: float
    config: TileConfig
    best_bucket: BucketInfo
    records: tuple[BucketRecord, ...]
    aborted: bool = False

    @property
    def num_failed(self) -> int:
        return sum(1 for r in self.records if r.status == BucketStatus.FAILED)


class ScheduleConfigSearcher:
    """Finds the lowest-scoring tile config over a set of buckets.

    Buckets come either from ``axes`` (partitioned with the tiling
    heuristic) or from an explicit ``bucket_infos`` sequence.

    Args:
        objective_func: Scores one bucket.
        axes: Named axes with their full scan ranges.
        bucket_infos: Explicit buckets to visit instead of ``axes``.
        computation: Computation shared by all buckets.
        computation_builder: Called with ``shape_for_bucket(bucket)`` to build
            a computation per bucket; dynamic axes are passed as -1.
        max_workers: Buckets evaluated concurrently. Defaults to the tuning
            config.
        seed: Seed passed to every evaluation. None keeps the objective's own.
    """

    def __init__(
        self,
        objective_func: BaseObjectiveFunc,
        axes: Optional[Sequence[SearchAxis]] = None,
        bucket_infos: Optional[Iterable[BucketInfo]] = None,
        computation: Any = None,
        computation_builder: Optional[ComputationBuilder] = None,
        max_workers: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        if axes is not None and bucket_infos is not None:
            raise ConfigurationError("Pass either axes or bucket_infos, not both")
        if computation is not None and computation_builder is not None:
            raise ConfigurationError("Pass either computation or computation_builder, not both")
        self.objective_func = objective_func
        self.axes = tuple(axes) if axes is not None else None
        self.bucket_infos = tuple(bucket_infos) if bucket_infos is not None else None
        self.computation = computation
        self.computation_builder = computation_builder
        self.max_workers = (
            max_workers if max_workers is not None else get_tuning_config().max_workers
        )
        if self.max_workers <= 0:
            raise ConfigurationError(f"max_workers must be positive, got {self.max_workers}")
        self.seed = seed
        self._abort_event = threading.Event()

    def abort(self) -> None:
        """Stop the running search at the next bucket boundary.

        Buckets already being evaluated finish; the rest stay PENDING.
        """
        self._abort_event.set()

    @property
    def aborted(self) -> bool:
        return self._abort_event.is_set()

    def iter_buckets(self) -> Iterable[BucketInfo]:
        """Buckets this searcher visits, in visit order."""
        if self.bucket_infos is not None:
            return iter(self.bucket_infos)
        if self.axes is not None:
            return iter_bucket_infos(self.axes)
        raise ConfigurationError("Searcher has neither axes nor bucket_infos")

    def _computation_for(self, bucket_info: BucketInfo, computation: Any = None) -> Any:
        if computation is not None:
            return computation
        if self.computation_builder is not None:
            return self.computation_builder(shape_for_bucket(bucket_info))
        return self.computation

    def _fail(self, record: BucketRecord, operation: str, error: Exception) -> None:
        record.status = BucketStatus.FAILED
        record.error = f"{type(error).__name__}: {error}"
        log_soft_failure(operation, error, context=str(record.bucket_info))

    def _evaluate(self, record: BucketRecord, computation: Any = None) -> None:
        record.status = BucketStatus.EVALUATING
        bucket_info = record.bucket_info
        try:
            computation = self._computation_for(bucket_info, computation)
        except Exception as e:
            self._fail(record, "computation build", e)
            return
        try:
            evaluation = self.objective_func.evaluate_detailed(
                computation, bucket_info, seed=self.seed
            )
        except (MeasurementError, ConfigurationError) as e:
            # Bucket-specific, e.g. more exhaustive combinations than max_trials
            self._fail(record, "bucket evaluation", e)
            return
        record.score = evaluation.score
        record.best_config = evaluation.best_config
        record.status = BucketStatus.SCORED

    def search_bucket(self, bucket_info: BucketInfo, computation: Any = None) -> TileConfig:
        """Evaluate a single bucket and return its best config.

        Raises:
            SearchExhaustedError: If the bucket could not be evaluated.
        """
        record = BucketRecord(index=0, bucket_info=bucket_info)
        self._evaluate(record, computation)
        if record.status != BucketStatus.SCORED:
            raise SearchExhaustedError(
                f"No viable configuration for {bucket_info}: {record.error}"
            )
        return TileConfig(tile_sizes=record.best_config, score=record.score)

    def search(self) -> SearchResult:
        """Visit every bucket and return the best config found.

        Raises:
            SearchExhaustedError: If every bucket failed.
            SearchAbortedError: If the search was aborted before any bucket
                was scored.
        """
        self._abort_event.clear()
        records = [
            BucketRecord(index=i, bucket_info=bucket_info)
            for i, bucket_info in enumerate(self.iter_buckets())
        ]
        best: list[Optional[BucketRecord]] = [None]
        best_lock = threading.Lock()

        def visit(record: BucketRecord) -> None:
            if self._abort_event.is_set():
                return
            logger.debug(f"Evaluating {record.bucket_info}")
            self._evaluate(record)
            if record.status != BucketStatus.SCORED:
                return
            with best_lock:
                current = best[0]
                if current is None or (record.score, record.index) < (current.score, current.index):
                    best[0] = record

        if self.max_workers == 1:
            for record in records:
                visit(record)
        else:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="tiletune-search"
            ) as pool:
                futures = [pool.submit(visit, record) for record in records]
                for future in futures:
                    future.result()

        aborted = self._abort_event.is_set() and any(
            r.status == BucketStatus.PENDING for r in records
        )
        winner = best[0]
        if winner is None:
            if aborted:
                raise SearchAbortedError(
                    f"Search aborted before any of {len(records)} buckets was scored"
                )
            raise SearchExhaustedError(
                f"No viable configuration: all {len(records)} buckets failed"
            )

        config = TileConfig(tile_sizes=winner.best_config, score=winner.score)
        logger.info(f"min score = {winner.score}")
        logger.info(f"best candidate: {config}")
        return SearchResult(
            score=winner.score,
            config=config,
            best_bucket=winner.bucket_info,
            records=tuple(records),
            aborted=aborted,
        )
