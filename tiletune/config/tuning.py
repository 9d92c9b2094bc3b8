"""Runtime tuning configuration for tiletune.

Controls sampling budget, seeding, per-trial timeouts and parallelism of
searches. Settings can be set globally, per thread, or temporarily via
``tuning_context``.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Union

from tiletune.constants import Aggregation
from tiletune.utils.exceptions import ConfigurationError


@dataclass(frozen=True)
class TuningConfig:
    """Configuration for tile config searches.

    Attributes:
        num_samples: Offsets drawn per dynamic axis in one bucket evaluation.
        seed: Seed for trial sampling. Evaluations with the same seed and
            inputs produce the same score.
        aggregation: How trial costs are reduced to a bucket score.
        objective: Name of the objective function to use.
        trial_timeout_s: Per-trial measurement timeout in seconds. None
            disables the timeout.
        max_workers: Number of buckets evaluated concurrently.
        write_back: Store search results in the database on a cache miss.
        cache_dir: Directory holding the tile config database. Defaults to
            $TILETUNE_CACHE_DIR or ~/.tiletune.

    Example:
        >>> from tiletune.config import TuningConfig, set_tuning_config
        >>> set_tuning_config(TuningConfig(num_samples=16, seed=7))
    """

    num_samples: int = 8
    seed: int = 0
    aggregation: Aggregation = Aggregation.MEAN
    objective: str = "weighted_sampling"
    trial_timeout_s: Optional[float] = None
    max_workers: int = 1
    write_back: bool = True
    cache_dir: Optional[Path] = None

    def validate(self) -> TuningConfig:
        """Check field ranges.

        Returns:
            self, to allow chaining.

        Raises:
            ConfigurationError: If any field is out of range.
        """
        from tiletune.search.objective import OBJECTIVE_REGISTRY

        if self.num_samples <= 0:
            raise ConfigurationError(
                f"num_samples must be positive, got {self.num_samples}"
            )
        if self.max_workers <= 0:
            raise ConfigurationError(
                f"max_workers must be positive, got {self.max_workers}"
            )
        if self.trial_timeout_s is not None and self.trial_timeout_s <= 0:
            raise ConfigurationError(
                f"trial_timeout_s must be positive or None, got {self.trial_timeout_s}"
            )
        if self.objective not in OBJECTIVE_REGISTRY:
            raise ConfigurationError(
                f"Unknown objective '{self.objective}'. "
                f"Valid values: {', '.join(sorted(OBJECTIVE_REGISTRY))}"
            )
        try:
            Aggregation(self.aggregation)
        except ValueError as e:
            raise ConfigurationError(f"Unknown aggregation '{self.aggregation}'") from e
        return self

    def resolved_cache_dir(self) -> Path:
        """Directory of the file-backed database for this configuration."""
        if self.cache_dir is not None:
            return Path(self.cache_dir)
        env_dir = os.environ.get("TILETUNE_CACHE_DIR")
        if env_dir:
            return Path(env_dir)
        return Path.home() / ".tiletune"

    @classmethod
    def from_env(cls) -> TuningConfig:
        """Build a configuration from TILETUNE_* environment variables.

        Raises:
            ConfigurationError: If a variable cannot be parsed.
        """
        kwargs = {}
        for env_name, field_name, parse in (
            ("TILETUNE_NUM_SAMPLES", "num_samples", int),
            ("TILETUNE_SEED", "seed", int),
            ("TILETUNE_TRIAL_TIMEOUT", "trial_timeout_s", float),
            ("TILETUNE_MAX_WORKERS", "max_workers", int),
            ("TILETUNE_CACHE_DIR", "cache_dir", Path),
        ):
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                kwargs[field_name] = parse(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid {env_name}='{raw}': {e}") from e
        return cls(**kwargs).validate()


# Thread-local storage so concurrent searches can tune independently
_thread_local = threading.local()

# Global default configuration (used when thread-local is not set)
_global_default_config = TuningConfig()

# Lock for thread-safe access to global config
_global_config_lock = threading.Lock()


def get_tuning_config() -> TuningConfig:
    """Get the current tuning configuration for this thread.

    Returns thread-local config if set, otherwise global default.
    """
    return getattr(_thread_local, "config", _global_default_config)


def set_tuning_config(config: TuningConfig) -> None:
    """Set the tuning configuration for this thread.

    Note: This sets thread-local config. For global default, use
    set_global_tuning_config().

    Args:
        config: New tuning configuration to use.
    """
    _thread_local.config = config.validate()


def set_global_tuning_config(config: TuningConfig) -> None:
    """Set the global default tuning configuration.

    This affects all threads that haven't set thread-local config.

    Args:
        config: New global default configuration.
    """
    global _global_default_config
    config.validate()
    with _global_config_lock:
        _global_default_config = config


def clear_thread_tuning_config() -> None:
    """Clear thread-local tuning config, reverting to global default."""
    if hasattr(_thread_local, "config"):
        del _thread_local.config


@contextmanager
def tuning_context(**overrides: Union[int, float, str, bool, Path, None]):
    """Context manager for temporarily changing tuning settings.

    Args:
        **overrides: TuningConfig fields to override within the context.

    Raises:
        ConfigurationError: If an override names an unknown field.

    Example:
        >>> with tuning_context(num_samples=32, seed=1):
        ...     result = searcher.search()
    """
    valid = {f.name for f in fields(TuningConfig)}
    unknown = set(overrides) - valid
    if unknown:
        raise ConfigurationError(
            f"Unknown tuning option(s): {', '.join(sorted(unknown))}"
        )

    had_local = hasattr(_thread_local, "config")
    old_config = get_tuning_config()
    new_config = replace(old_config, **overrides)
    set_tuning_config(new_config)
    try:
        yield new_config
    finally:
        if had_local:
            _thread_local.config = old_config
        else:
            clear_thread_tuning_config()
