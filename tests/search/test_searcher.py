"""Tests for the bucket searcher."""

import math

import pytest

from tiletune.constants import BucketStatus
from tiletune.schedule import (
    BucketInfo,
    Dimension,
    InMemoryTileConfigDatabase,
    ScheduleConfigManager,
    SearchAxis,
)
from tiletune.hardware import Target
from tiletune.search import (
    CallableMeasurer,
    ExhaustiveObjectiveFunc,
    MeasureResult,
    Measurer,
    ScheduleConfigSearcher,
    WeightedSamplingTrialObjectiveFunc,
)
from tiletune.utils.exceptions import (
    ConfigurationError,
    SearchAbortedError,
    SearchExhaustedError,
)


def sampling(measurer, num_samples=4):
    return WeightedSamplingTrialObjectiveFunc(measurer, num_samples=num_samples, seed=0)


def spatial_axis(right=100):
    """Static "S" axis starting at 0; lower bounds 0, 32, 64, 96 for right=100."""
    return SearchAxis("S", 0, right)


class TestEndToEnd:
    def test_single_bucket_constant_cost(self, constant_measurer):
        """S fixed at 32, R dynamic over [32, 32]: R is 32 and the score is the constant."""
        bucket = BucketInfo((
            Dimension.uniform(32, 32, "S", False),
            Dimension.uniform(32, 32, "R", True),
        ))
        searcher = ScheduleConfigSearcher(sampling(constant_measurer), bucket_infos=[bucket])

        result = searcher.search()

        assert result.config.tile_sizes == (32, 32)
        assert result.score == 4.0
        assert result.config.score == 4.0
        assert result.best_bucket == bucket
        assert [r.status for r in result.records] == [BucketStatus.SCORED]

    def test_axes_with_dynamic_reduce(self, constant_measurer):
        shapes = []

        def build(shape):
            shapes.append(shape)
            return {"shape": shape}

        searcher = ScheduleConfigSearcher(
            sampling(constant_measurer, num_samples=8),
            axes=[SearchAxis("S", 32, 32), SearchAxis("R", 32, 32, is_dynamic=True)],
            computation_builder=build,
        )
        result = searcher.search()

        assert shapes == [(32, -1)]
        s, r = result.config.tile_sizes
        assert s == 32
        assert 32 <= r <= 63
        assert result.score == 4.0

    def test_shared_computation_passed_to_measurer(self):
        seen = set()
        measurer = CallableMeasurer(lambda comp, cfg: seen.add(comp) or 1.0)
        searcher = ScheduleConfigSearcher(
            sampling(measurer), axes=[spatial_axis(40)], computation="reduce_sum"
        )
        searcher.search()
        assert seen == {"reduce_sum"}


class TestBestSelection:
    def test_lowest_score_wins(self):
        measurer = CallableMeasurer(lambda comp, cfg: float(200 - cfg[0]))
        result = ScheduleConfigSearcher(sampling(measurer), axes=[spatial_axis()]).search()
        assert result.config.tile_sizes == (96,)
        assert result.score == 104.0
        assert len(result.records) == 4

    def test_ties_prefer_first_bucket(self, constant_measurer):
        result = ScheduleConfigSearcher(
            sampling(constant_measurer), axes=[spatial_axis()]
        ).search()
        assert result.best_bucket[0].lower_bound == 0

    def test_ties_prefer_first_bucket_in_parallel(self, constant_measurer):
        result = ScheduleConfigSearcher(
            sampling(constant_measurer), axes=[spatial_axis()], max_workers=4
        ).search()
        assert result.best_bucket[0].lower_bound == 0

    def test_parallel_matches_sequential(self):
        measurer = CallableMeasurer(lambda comp, cfg: float((cfg[0] - 64) ** 2 + cfg[1]))
        axes = [spatial_axis(), SearchAxis("R", 0, 200, is_dynamic=True)]
        sequential = ScheduleConfigSearcher(sampling(measurer), axes=axes).search()
        parallel = ScheduleConfigSearcher(sampling(measurer), axes=axes, max_workers=4).search()
        assert parallel.score == sequential.score
        assert parallel.config == sequential.config
        assert parallel.best_bucket == sequential.best_bucket

    def test_exhaustive_objective(self):
        measurer = CallableMeasurer(lambda comp, cfg: float(cfg[0] % 7))
        searcher = ScheduleConfigSearcher(
            ExhaustiveObjectiveFunc(measurer),
            axes=[SearchAxis("R", 0, 40, is_dynamic=True)],
        )
        result = searcher.search()
        assert result.config.tile_sizes[0] % 7 == 0


class TestFailures:
    def test_failed_bucket_skipped(self):
        def fn(comp, cfg):
            if cfg[0] == 64:
                raise RuntimeError("out of threadgroup memory")
            return float(cfg[0])

        result = ScheduleConfigSearcher(
            sampling(CallableMeasurer(fn)), axes=[SearchAxis("S", 32, 64)]
        ).search()

        statuses = [r.status for r in result.records]
        assert statuses == [BucketStatus.SCORED, BucketStatus.FAILED]
        assert result.records[1].error is not None
        assert result.records[1].score is None
        assert result.num_failed == 1
        assert result.config.tile_sizes == (32,)

    def test_failed_bucket_not_best_even_if_first(self):
        def fn(comp, cfg):
            if cfg[0] == 0:
                raise RuntimeError("invalid tile")
            return 1000.0

        result = ScheduleConfigSearcher(
            sampling(CallableMeasurer(fn)), axes=[spatial_axis()]
        ).search()
        assert result.best_bucket[0].lower_bound == 32

    def test_all_buckets_fail(self, failing_measurer):
        searcher = ScheduleConfigSearcher(sampling(failing_measurer), axes=[spatial_axis()])
        with pytest.raises(SearchExhaustedError, match="all 4 buckets failed"):
            searcher.search()

    def test_all_buckets_fail_in_parallel(self, failing_measurer):
        searcher = ScheduleConfigSearcher(
            sampling(failing_measurer), axes=[spatial_axis()], max_workers=3
        )
        with pytest.raises(SearchExhaustedError):
            searcher.search()

    def test_invalid_cost_bucket_never_wins(self):
        """A bucket reporting NaN fails instead of becoming the best."""

        class NaNAtOrigin(Measurer):
            def measure(self, computation, tile_config):
                return MeasureResult(cost=math.nan if tile_config[0] == 0 else 1.0)

        result = ScheduleConfigSearcher(
            sampling(NaNAtOrigin()), axes=[spatial_axis()]
        ).search()

        assert result.records[0].status == BucketStatus.FAILED
        assert result.score == 1.0
        assert result.best_bucket[0].lower_bound == 32

    def test_oversized_bucket_fails_alone(self, constant_measurer):
        """Too many exhaustive combinations fail that bucket, not the search."""
        searcher = ScheduleConfigSearcher(
            ExhaustiveObjectiveFunc(constant_measurer, max_trials=64),
            axes=[SearchAxis("R", 0, 130, is_dynamic=True)],
        )
        result = searcher.search()

        statuses = [r.status for r in result.records]
        assert statuses == [BucketStatus.SCORED] * 4 + [BucketStatus.FAILED]
        assert "max_trials" in result.records[-1].error
        assert result.score == 4.0

    def test_computation_builder_failure_fails_bucket(self, constant_measurer):
        def build(shape):
            if shape[0] == 64:
                raise RuntimeError("unsupported shape")
            return shape

        result = ScheduleConfigSearcher(
            sampling(constant_measurer), axes=[spatial_axis()], computation_builder=build
        ).search()

        assert result.records[2].status == BucketStatus.FAILED
        assert "unsupported shape" in result.records[2].error
        assert result.num_failed == 1

    def test_every_builder_failing(self, constant_measurer):
        def build(shape):
            raise RuntimeError("unsupported shape")

        searcher = ScheduleConfigSearcher(
            sampling(constant_measurer), axes=[spatial_axis()], computation_builder=build
        )
        with pytest.raises(SearchExhaustedError):
            searcher.search()


class TestAbort:
    def test_abort_after_last_bucket_not_reported(self):
        holder = {}

        def fn(comp, cfg):
            if cfg[0] == 96:
                holder["searcher"].abort()
            return 1.0

        searcher = ScheduleConfigSearcher(
            sampling(CallableMeasurer(fn)), axes=[spatial_axis()]
        )
        holder["searcher"] = searcher
        result = searcher.search()

        assert not result.aborted
        assert all(r.status == BucketStatus.SCORED for r in result.records)

    def test_abort_keeps_partial_result(self):
        holder = {}

        def fn(comp, cfg):
            holder["searcher"].abort()
            return 1.0

        searcher = ScheduleConfigSearcher(
            sampling(CallableMeasurer(fn)), axes=[spatial_axis()]
        )
        holder["searcher"] = searcher
        result = searcher.search()

        assert result.aborted
        assert result.records[0].status == BucketStatus.SCORED
        assert all(r.status == BucketStatus.PENDING for r in result.records[1:])

    def test_abort_before_any_score(self):
        holder = {}

        def fn(comp, cfg):
            holder["searcher"].abort()
            raise RuntimeError("invalid tile")

        searcher = ScheduleConfigSearcher(
            sampling(CallableMeasurer(fn)), axes=[spatial_axis()]
        )
        holder["searcher"] = searcher
        with pytest.raises(SearchAbortedError):
            searcher.search()

    def test_new_search_clears_abort(self, constant_measurer):
        searcher = ScheduleConfigSearcher(sampling(constant_measurer), axes=[spatial_axis()])
        searcher.abort()
        result = searcher.search()
        assert not result.aborted
        assert all(r.status == BucketStatus.SCORED for r in result.records)


class TestSearchBucket:
    def test_returns_scored_config(self, constant_measurer):
        bucket = BucketInfo((Dimension.uniform(32, 63, "R", True),))
        config = ScheduleConfigSearcher(sampling(constant_measurer)).search_bucket(bucket)
        assert config.score == 4.0
        assert config.fits(bucket)

    def test_builder_receives_dynamic_shape(self, constant_measurer):
        shapes = []
        searcher = ScheduleConfigSearcher(
            sampling(constant_measurer), computation_builder=shapes.append
        )
        searcher.search_bucket(BucketInfo((
            Dimension.uniform(128, 128, "S", False),
            Dimension.uniform(32, 63, "R", True),
        )))
        assert shapes == [(128, -1)]

    def test_failure(self, failing_measurer):
        searcher = ScheduleConfigSearcher(sampling(failing_measurer))
        with pytest.raises(SearchExhaustedError, match="No viable configuration"):
            searcher.search_bucket(BucketInfo((Dimension.uniform(0, 31, "R", True),)))

    def test_through_manager(self, constant_measurer):
        db = InMemoryTileConfigDatabase()
        target = Target(arch="cpu", device_name="test")
        bucket = BucketInfo((Dimension.uniform(32, 63, "R", True),))
        manager = ScheduleConfigManager(
            database=db,
            policy="database",
            searcher=ScheduleConfigSearcher(sampling(constant_measurer)),
        )
        config = manager.get_config(target, bucket)
        assert config.score == 4.0
        assert db.get_config(target, bucket) == config


class TestConstruction:
    def test_axes_and_buckets_exclusive(self, constant_measurer):
        bucket = BucketInfo((Dimension.uniform(0, 0, "S", False),))
        with pytest.raises(ConfigurationError):
            ScheduleConfigSearcher(
                sampling(constant_measurer), axes=[spatial_axis()], bucket_infos=[bucket]
            )

    def test_computation_and_builder_exclusive(self, constant_measurer):
        with pytest.raises(ConfigurationError):
            ScheduleConfigSearcher(
                sampling(constant_measurer), computation="c", computation_builder=lambda s: s
            )

    def test_invalid_workers(self, constant_measurer):
        with pytest.raises(ConfigurationError):
            ScheduleConfigSearcher(sampling(constant_measurer), max_workers=0)

    def test_search_without_space(self, constant_measurer):
        with pytest.raises(ConfigurationError):
            ScheduleConfigSearcher(sampling(constant_measurer)).search()
