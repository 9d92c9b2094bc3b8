"""Measurement backends for candidate tile configs.

A measurer runs (or simulates) a computation configured with one concrete
tile config and reports its cost. Measurers raise ``MeasurementError`` when
a trial cannot be executed; objective functions exclude such trials.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Optional, Sequence, Union

import numpy as np

from tiletune.utils.exceptions import MeasurementError

logger = logging.getLogger(__name__)

TrialConfig = tuple[int, ...]


@dataclass(frozen=True)
class MeasureResult:
    """Cost of a single trial.

    Attributes:
        cost: Runtime or proxy cost. Lower is better.
    """

    cost: float


class Measurer(ABC):
    """Executes a computation with a concrete tile config and reports its cost."""

    @abstractmethod
    def measure(self, computation: Any, tile_config: TrialConfig) -> MeasureResult:
        """Measure one trial.

        Args:
            computation: Opaque handle of the computation under tuning.
            tile_config: One concrete tile size per bucket dimension.

        Returns:
            MeasureResult with a finite, non-negative cost.

        Raises:
            MeasurementError: If the trial cannot be measured.
        """


def _checked_cost(cost: Union[float, MeasureResult], tile_config: TrialConfig) -> MeasureResult:
    if isinstance(cost, MeasureResult):
        cost = cost.cost
    try:
        value = float(cost)
    except (TypeError, ValueError) as e:
        raise MeasurementError(f"Measurer returned non-numeric cost {cost!r}") from e
    if not math.isfinite(value) or value < 0:
        raise MeasurementError(
            f"Measurer returned invalid cost {value} for config {tile_config}"
        )
    return MeasureResult(cost=value)


class CallableMeasurer(Measurer):
    """Adapts a plain function ``fn(computation, tile_config) -> cost``.

    Any exception raised by ``fn`` marks the trial as failed.
    """

    def __init__(self, fn: Callable[[Any, TrialConfig], Union[float, MeasureResult]]):
        self.fn = fn

    def measure(self, computation: Any, tile_config: TrialConfig) -> MeasureResult:
        try:
            cost = self.fn(computation, tile_config)
        except MeasurementError:
            raise
        except Exception as e:
            raise MeasurementError(
                f"Trial {tile_config} failed: {type(e).__name__}: {e}"
            ) from e
        return _checked_cost(cost, tile_config)


@dataclass(frozen=True)
class TimingStats:
    """Summary of the samples recorded under one label (milliseconds)."""

    count: int
    mean_ms: float
    min_ms: float
    max_ms: float
    std_ms: float


class PerformanceStatistician:
    """Thread-safe recorder of named timing samples.

    Example:
        >>> stats = PerformanceStatistician()
        >>> with stats.timer("reduce_sum"):
        ...     run_kernel()
        >>> stats.summary()["reduce_sum"].mean_ms
    """

    def __init__(self) -> None:
        self._samples: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def record(self, label: str, elapsed_ms: float) -> None:
        with self._lock:
            self._samples.setdefault(label, []).append(float(elapsed_ms))

    @contextmanager
    def timer(self, label: str):
        """Record the wall time of the enclosed block under ``label``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(label, (time.perf_counter() - start) * 1000)

    def samples(self, label: str) -> list[float]:
        with self._lock:
            return list(self._samples.get(label, ()))

    def summary(self) -> dict[str, TimingStats]:
        """Per-label count, mean, min, max and standard deviation."""
        with self._lock:
            snapshot = {label: list(values) for label, values in self._samples.items()}
        result = {}
        for label, values in snapshot.items():
            arr = np.asarray(values, dtype=np.float64)
            result[label] = TimingStats(
                count=len(values),
                mean_ms=float(arr.mean()),
                min_ms=float(arr.min()),
                max_ms=float(arr.max()),
                std_ms=float(arr.std()),
            )
        return result

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()


@lru_cache(maxsize=1)
def get_performance_statistician() -> PerformanceStatistician:
    """Get the global performance statistician instance."""
    return PerformanceStatistician()


def mlx_synchronize(result: Any) -> None:
    """Force evaluation of MLX outputs and wait for the device."""
    import mlx.core as mx

    mx.eval(result)
    mx.synchronize()


class TimingMeasurer(Measurer):
    """Measures wall-clock time of a kernel launched with a tile config.

    The cost is the average time per call in milliseconds.

    Attributes:
        kernel_fn: Callable ``kernel_fn(computation, tile_config)`` running
            the configured kernel once.
        warmup_iters: Number of untimed warmup calls.
        benchmark_iters: Number of timed calls.
        timeout_ms: Stop timing once this much time has been spent; the
            average covers the calls made so far.
        synchronize: Called with each kernel result before the clock is
            read, e.g. ``mlx_synchronize`` for MLX kernels.
        statistician: Receives every timed sample, labelled by config.
    """

    def __init__(
        self,
        kernel_fn: Callable[[Any, TrialConfig], Any],
        warmup_iters: int = 3,
        benchmark_iters: int = 10,
        timeout_ms: float = 5000.0,
        synchronize: Optional[Callable[[Any], None]] = None,
        statistician: Optional[PerformanceStatistician] = None,
        label: str = "kernel",
    ):
        if benchmark_iters <= 0:
            raise ValueError(f"benchmark_iters must be positive, got {benchmark_iters}")
        self.kernel_fn = kernel_fn
        self.warmup_iters = warmup_iters
        self.benchmark_iters = benchmark_iters
        self.timeout_ms = timeout_ms
        self.synchronize = synchronize
        self.statistician = statistician or get_performance_statistician()
        self.label = label

    def _run(self, computation: Any, tile_config: TrialConfig) -> None:
        result = self.kernel_fn(computation, tile_config)
        if self.synchronize is not None:
            self.synchronize(result)

    def measure(self, computation: Any, tile_config: TrialConfig) -> MeasureResult:
        label = f"{self.label}[{', '.join(str(s) for s in tile_config)}]"
        try:
            for _ in range(self.warmup_iters):
                self._run(computation, tile_config)

            times = []
            for _ in range(self.benchmark_iters):
                start = time.perf_counter()
                self._run(computation, tile_config)
                elapsed_ms = (time.perf_counter() - start) * 1000
                times.append(elapsed_ms)
                self.statistician.record(label, elapsed_ms)

                if sum(times) > self.timeout_ms:
                    break
        except Exception as e:
            logger.debug(f"Benchmark failed for config {tile_config}: {e}")
            raise MeasurementError(
                f"Trial {tile_config} failed: {type(e).__name__}: {e}"
            ) from e

        return _checked_cost(sum(times) / len(times), tile_config)


def measure_with_timeout(
    measurer: Measurer,
    computation: Any,
    tile_config: Sequence[int],
    timeout_s: Optional[float] = None,
) -> MeasureResult:
    """Run one measurement, giving up after ``timeout_s`` seconds.

    With a timeout the measurement runs on a daemon thread. A trial that
    times out keeps running in the background, but the caller is released
    and the trial is reported as failed.

    The reported cost is validated the same way for every measurer: a plain
    number is accepted in place of a MeasureResult, and a non-numeric,
    negative or non-finite cost fails the trial.

    Raises:
        MeasurementError: If the measurement fails, times out or reports an
            invalid cost.
    """
    tile_config = tuple(int(s) for s in tile_config)
    outcome: dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["result"] = measurer.measure(computation, tile_config)
        except Exception as e:
            outcome["error"] = e

    if timeout_s is None:
        target()
    else:
        thread = threading.Thread(
            target=target, name=f"tiletune-measure-{tile_config}", daemon=True
        )
        thread.start()
        thread.join(timeout_s)
        if thread.is_alive():
            raise MeasurementError(
                f"Trial {tile_config} timed out after {timeout_s:.3g}s"
            )

    if "error" in outcome:
        error = outcome["error"]
        if isinstance(error, MeasurementError):
            raise error
        raise MeasurementError(
            f"Trial {tile_config} failed: {type(error).__name__}: {error}"
        ) from error
    return _checked_cost(outcome["result"], tile_config)
