"""Objective functions scoring a computation over one bucket.

An objective function turns a bucket into concrete trial configs, measures
each one, and reduces the costs to a single score (lower is better). Trials
that fail to measure are excluded; if every trial fails the evaluation
raises ``MeasurementError`` and the searcher skips the bucket.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np

from tiletune.config import get_tuning_config
from tiletune.constants import Aggregation
from tiletune.schedule.bucket import BucketInfo
from tiletune.search.measurer import Measurer, TrialConfig, measure_with_timeout
from tiletune.utils.exceptions import ConfigurationError, MeasurementError
from tiletune.utils.logging import log_soft_failure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrialOutcome:
    """Measurement of one trial config.

    Attributes:
        tile_config: The concrete per-axis offsets measured.
        weight: Weight of the trial in the aggregate score.
        cost: Measured cost, or None if the trial failed.
        error: Failure message when the trial failed.
    """

    tile_config: TrialConfig
    weight: float
    cost: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.cost is not None


@dataclass(frozen=True)
class Evaluation:
    """Full result of evaluating one bucket.

    Attributes:
        score: Aggregated cost over the successful trials.
        best_config: Successful trial with the lowest cost (first one on ties).
        trials: Every trial in draw order, including failures.
    """

    score: float
    best_config: TrialConfig
    trials: tuple[TrialOutcome, ...]

    @property
    def num_failed(self) -> int:
        return sum(1 for t in self.trials if not t.ok)


class BaseObjectiveFunc(ABC):
    """Scores a computation over a bucket.

    Subclasses decide which trial configs to measure; measuring, failure
    handling and aggregation are shared.

    Args:
        measurer: Backend that measures one trial.
        aggregation: Reduction of trial costs. Defaults to the tuning config.
        trial_timeout_s: Per-trial timeout. Defaults to the tuning config.
    """

    name = "base"

    def __init__(
        self,
        measurer: Measurer,
        aggregation: Optional[Union[Aggregation, str]] = None,
        trial_timeout_s: Optional[float] = None,
    ):
        config = get_tuning_config()
        self.measurer = measurer
        try:
            self.aggregation = Aggregation(
                aggregation if aggregation is not None else config.aggregation
            )
        except ValueError as e:
            raise ConfigurationError(f"Unknown aggregation '{aggregation}'") from e
        self.trial_timeout_s = (
            trial_timeout_s if trial_timeout_s is not None else config.trial_timeout_s
        )

    @abstractmethod
    def trial_configs(
        self,
        bucket_info: BucketInfo,
        seed: Optional[int] = None,
    ) -> list[tuple[TrialConfig, float]]:
        """Concrete (config, weight) pairs to measure for a bucket."""

    def evaluate(
        self,
        computation: Any,
        bucket_info: BucketInfo,
        seed: Optional[int] = None,
    ) -> float:
        """Score of ``computation`` over ``bucket_info``.

        Raises:
            MeasurementError: If no trial could be measured.
        """
        return self.evaluate_detailed(computation, bucket_info, seed=seed).score

    def evaluate_detailed(
        self,
        computation: Any,
        bucket_info: BucketInfo,
        seed: Optional[int] = None,
    ) -> Evaluation:
        """Like ``evaluate`` but also returns the best trial and all outcomes.

        Each distinct trial config is measured once; repeated draws reuse
        the measurement.

        Raises:
            MeasurementError: If no trial could be measured.
        """
        trials = self.trial_configs(bucket_info, seed=seed)
        measured: dict[TrialConfig, Union[float, MeasurementError]] = {}
        outcomes = []

        for tile_config, weight in trials:
            if tile_config not in measured:
                try:
                    result = measure_with_timeout(
                        self.measurer, computation, tile_config, self.trial_timeout_s
                    )
                    measured[tile_config] = result.cost
                except MeasurementError as e:
                    log_soft_failure(
                        f"{self.name} trial",
                        e,
                        context=f"{bucket_info} config={tile_config}",
                    )
                    measured[tile_config] = e

            value = measured[tile_config]
            if isinstance(value, MeasurementError):
                outcomes.append(TrialOutcome(tile_config, weight, error=str(value)))
            else:
                outcomes.append(TrialOutcome(tile_config, weight, cost=value))

        ok = [t for t in outcomes if t.ok]
        if not ok:
            raise MeasurementError(
                f"All {len(outcomes)} trials failed for {bucket_info}"
            )

        score = self._aggregate(ok)
        best = min(ok, key=lambda t: t.cost)
        logger.debug(
            f"{bucket_info}: score={score:.6g}, best={best.tile_config}, "
            f"failed={len(outcomes) - len(ok)}/{len(outcomes)}"
        )
        return Evaluation(score=score, best_config=best.tile_config, trials=tuple(outcomes))

    def _aggregate(self, ok: list[TrialOutcome]) -> float:
        costs = np.asarray([t.cost for t in ok], dtype=np.float64)
        base = float(costs.min())
        if self.aggregation == Aggregation.MIN:
            return base
        weights = np.asarray([t.weight for t in ok], dtype=np.float64)
        if weights.sum() <= 0:
            weights = np.ones_like(weights)
        # Offset by the minimum so identical costs aggregate to that exact cost
        return base + float(np.average(costs - base, weights=weights))


class WeightedSamplingTrialObjectiveFunc(BaseObjectiveFunc):
    """Scores a bucket from offsets drawn by the axes' sampling weights.

    Each dynamic axis draws ``num_samples`` offsets from its normalized
    weight distribution; each static axis contributes its lower bound. The
    i-th draws of every axis form the i-th trial. With the same seed, the
    same bucket always yields the same trials.

    Args:
        measurer: Backend that measures one trial.
        num_samples: Draws per dynamic axis. Defaults to the tuning config.
        seed: Sampling seed. Defaults to the tuning config.
        aggregation: Reduction of trial costs. Defaults to the tuning config.
        trial_timeout_s: Per-trial timeout. Defaults to the tuning config.
    """

    name = "weighted_sampling"

    def __init__(
        self,
        measurer: Measurer,
        num_samples: Optional[int] = None,
        seed: Optional[int] = None,
        aggregation: Optional[Union[Aggregation, str]] = None,
        trial_timeout_s: Optional[float] = None,
    ):
        super().__init__(measurer, aggregation=aggregation, trial_timeout_s=trial_timeout_s)
        config = get_tuning_config()
        self.num_samples = num_samples if num_samples is not None else config.num_samples
        self.seed = seed if seed is not None else config.seed
        if self.num_samples <= 0:
            raise ConfigurationError(f"num_samples must be positive, got {self.num_samples}")

    def trial_configs(
        self,
        bucket_info: BucketInfo,
        seed: Optional[int] = None,
    ) -> list[tuple[TrialConfig, float]]:
        rng = np.random.default_rng(self.seed if seed is None else seed)
        columns = []
        for dim in bucket_info:
            if dim.is_dynamic:
                draws = rng.choice(
                    dim.offsets(), size=self.num_samples, p=dim.normalized_weights()
                )
            else:
                draws = np.full(self.num_samples, dim.lower_bound, dtype=np.int64)
            columns.append(draws)
        return [
            (tuple(int(col[i]) for col in columns), 1.0)
            for i in range(self.num_samples)
        ]


class ExhaustiveObjectiveFunc(BaseObjectiveFunc):
    """Scores a bucket by measuring every offset combination.

    Dynamic axes enumerate all their offsets, weighted by the normalized
    sampling weights; static axes contribute their lower bound. The trial
    weight is the product of the per-axis weights.

    Args:
        measurer: Backend that measures one trial.
        max_trials: Refuse buckets with more combinations than this.
        aggregation: Reduction of trial costs. Defaults to the tuning config.
        trial_timeout_s: Per-trial timeout. Defaults to the tuning config.
    """

    name = "exhaustive"

    def __init__(
        self,
        measurer: Measurer,
        max_trials: int = 4096,
        aggregation: Optional[Union[Aggregation, str]] = None,
        trial_timeout_s: Optional[float] = None,
    ):
        super().__init__(measurer, aggregation=aggregation, trial_timeout_s=trial_timeout_s)
        self.max_trials = max_trials

    def trial_configs(
        self,
        bucket_info: BucketInfo,
        seed: Optional[int] = None,
    ) -> list[tuple[TrialConfig, float]]:
        per_axis = []
        total = 1
        for dim in bucket_info:
            if dim.is_dynamic:
                pairs = list(zip(dim.offsets().tolist(), dim.normalized_weights().tolist()))
            else:
                pairs = [(dim.lower_bound, 1.0)]
            total *= len(pairs)
            per_axis.append(pairs)

        if total > self.max_trials:
            raise ConfigurationError(
                f"{bucket_info} has {total} combinations, more than "
                f"max_trials={self.max_trials}"
            )

        trials = []
        for combo in itertools.product(*per_axis):
            config = tuple(int(offset) for offset, _ in combo)
            weight = float(np.prod([w for _, w in combo]))
            trials.append((config, weight))
        return trials


OBJECTIVE_REGISTRY: dict[str, type[BaseObjectiveFunc]] = {
    WeightedSamplingTrialObjectiveFunc.name: WeightedSamplingTrialObjectiveFunc,
    ExhaustiveObjectiveFunc.name: ExhaustiveObjectiveFunc,
}


def create_objective_func(
    name: Optional[str],
    measurer: Measurer,
    **kwargs: Any,
) -> BaseObjectiveFunc:
    """Instantiate an objective function by name.

    Args:
        name: Registered objective name. Defaults to the tuning config.
        measurer: Backend that measures one trial.
        **kwargs: Extra arguments for the objective's constructor.

    Raises:
        ConfigurationError: If the name is not registered.
    """
    if name is None:
        name = get_tuning_config().objective
    try:
        cls = OBJECTIVE_REGISTRY[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown objective '{name}'. "
            f"Valid values: {', '.join(sorted(OBJECTIVE_REGISTRY))}"
        ) from None
    return cls(measurer, **kwargs)
