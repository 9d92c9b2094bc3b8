"""Measured search for tile configs.

This module provides:
- Measurers that run a configured computation and report its cost
- Objective functions scoring a computation over one bucket
- The searcher walking every bucket and keeping the best
"""

from tiletune.search.measurer import (
    CallableMeasurer,
    MeasureResult,
    Measurer,
    PerformanceStatistician,
    TimingMeasurer,
    TimingStats,
    get_performance_statistician,
    measure_with_timeout,
    mlx_synchronize,
)
from tiletune.search.objective import (
    OBJECTIVE_REGISTRY,
    BaseObjectiveFunc,
    Evaluation,
    ExhaustiveObjectiveFunc,
    TrialOutcome,
    WeightedSamplingTrialObjectiveFunc,
    create_objective_func,
)
from tiletune.search.searcher import (
    BucketRecord,
    ScheduleConfigSearcher,
    SearchResult,
)

__all__ = [
    # Measurement
    "Measurer",
    "MeasureResult",
    "CallableMeasurer",
    "TimingMeasurer",
    "PerformanceStatistician",
    "TimingStats",
    "get_performance_statistician",
    "measure_with_timeout",
    "mlx_synchronize",
    # Objective functions
    "BaseObjectiveFunc",
    "WeightedSamplingTrialObjectiveFunc",
    "ExhaustiveObjectiveFunc",
    "Evaluation",
    "TrialOutcome",
    "OBJECTIVE_REGISTRY",
    "create_objective_func",
    # Search
    "ScheduleConfigSearcher",
    "SearchResult",
    "BucketRecord",
]
