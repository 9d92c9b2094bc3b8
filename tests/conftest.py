"""Pytest configuration for tiletune tests."""

import pytest

from tiletune.config import clear_thread_tuning_config
from tiletune.schedule import reset_schedule_config_manager
from tiletune.search import CallableMeasurer


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow running")


@pytest.fixture(autouse=True)
def isolate_tiletune_state(tmp_path, monkeypatch):
    """Keep the process-wide manager, config and cache dir per-test."""
    import tiletune.utils.logging as log_module

    monkeypatch.setenv("TILETUNE_CACHE_DIR", str(tmp_path / "cache"))
    original_seen = log_module._soft_failures_seen.copy()
    log_module._soft_failures_seen.clear()
    clear_thread_tuning_config()
    reset_schedule_config_manager()

    yield

    reset_schedule_config_manager()
    clear_thread_tuning_config()
    log_module._soft_failures_seen = original_seen


@pytest.fixture
def constant_measurer():
    """Measurer returning a fixed cost of 4.0 for every trial."""
    return CallableMeasurer(lambda computation, config: 4.0)


@pytest.fixture
def failing_measurer():
    """Measurer whose every trial fails."""

    def fail(computation, config):
        raise RuntimeError("kernel launch failed")

    return CallableMeasurer(fail)
