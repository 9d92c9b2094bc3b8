"""Configuration module for tiletune.

Provides runtime configuration for sampling, timeouts and parallelism of
tile config searches.
"""

from tiletune.config.tuning import (
    TuningConfig,
    clear_thread_tuning_config,
    get_tuning_config,
    set_global_tuning_config,
    set_tuning_config,
    tuning_context,
)

__all__ = [
    "TuningConfig",
    "get_tuning_config",
    "set_tuning_config",
    "set_global_tuning_config",
    "clear_thread_tuning_config",
    "tuning_context",
]
