"""Tests for the schedule config manager."""

import threading

import pytest

from tiletune.constants import SchedulePolicy
from tiletune.hardware import Target
from tiletune.schedule import (
    BucketInfo,
    Dimension,
    FileTileConfigDatabase,
    InMemoryTileConfigDatabase,
    ScheduleConfigManager,
    TileConfig,
    get_config,
    get_schedule_config_manager,
    heuristic_tile_config,
    reset_schedule_config_manager,
)
from tiletune.schedule.database import TileConfigDatabase
from tiletune.utils.exceptions import (
    ConfigurationError,
    DatabaseIOError,
    SearchExhaustedError,
)

TARGET = Target(arch="metal", device_name="Apple M2 Max")


def make_bucket():
    return BucketInfo((
        Dimension.uniform(32, 32, "S", False),
        Dimension.uniform(32, 63, "R", True),
    ))


class CountingSearcher:
    """Searcher stand-in that records how often it is invoked."""

    def __init__(self, config=TileConfig((32, 50), score=0.25), error=None):
        self.config = config
        self.error = error
        self.calls = 0
        self.lock = threading.Lock()

    def search_bucket(self, bucket_info, computation=None):
        with self.lock:
            self.calls += 1
        if self.error is not None:
            raise self.error
        return self.config


class BrokenDatabase(TileConfigDatabase):
    """Database whose every operation fails with an IO error."""

    def get_configs(self, target, bucket_info=None):
        raise DatabaseIOError("disk unavailable")

    def set_config(self, target, bucket_info, config):
        raise DatabaseIOError("disk unavailable")

    def delete_config(self, target, bucket_info):
        raise DatabaseIOError("disk unavailable")

    def clear(self):
        raise DatabaseIOError("disk unavailable")


class TestPolicy:
    def test_default_policy(self):
        manager = ScheduleConfigManager(database=InMemoryTileConfigDatabase())
        assert manager.policy == SchedulePolicy.DEFAULT

    def test_set_policy(self):
        manager = ScheduleConfigManager(database=InMemoryTileConfigDatabase())
        manager.set_policy("database")
        assert manager.policy == SchedulePolicy.DATABASE
        manager.set_policy(SchedulePolicy.DEFAULT)
        assert manager.policy == "default"

    def test_unknown_policy_fails(self):
        manager = ScheduleConfigManager(database=InMemoryTileConfigDatabase())
        with pytest.raises(ConfigurationError, match="Unknown schedule policy"):
            manager.set_policy("fastest")
        assert manager.policy == SchedulePolicy.DEFAULT

    def test_unknown_initial_policy_fails(self):
        with pytest.raises(ConfigurationError):
            ScheduleConfigManager(policy="random")


class TestDefaultPolicy:
    def test_uses_heuristic_and_ignores_database(self):
        db = InMemoryTileConfigDatabase()
        bucket = make_bucket()
        db.set_config(TARGET, bucket, TileConfig((32, 50), score=0.1))
        searcher = CountingSearcher()
        manager = ScheduleConfigManager(database=db, searcher=searcher)

        config = manager.get_config(TARGET, bucket)

        assert config == heuristic_tile_config(bucket)
        assert searcher.calls == 0


class TestDatabasePolicy:
    def test_cache_hit_skips_searcher(self):
        """A cached entry is returned without invoking the searcher."""
        db = InMemoryTileConfigDatabase()
        bucket = make_bucket()
        cached = TileConfig((32, 41), score=0.75)
        db.set_config(TARGET, bucket, cached)
        searcher = CountingSearcher()
        manager = ScheduleConfigManager(database=db, policy="database", searcher=searcher)

        assert manager.get_config(TARGET, bucket) == cached
        assert searcher.calls == 0

    def test_miss_searches_and_writes_back(self):
        db = InMemoryTileConfigDatabase()
        bucket = make_bucket()
        searcher = CountingSearcher()
        manager = ScheduleConfigManager(database=db, policy="database", searcher=searcher)

        first = manager.get_config(TARGET, bucket)
        second = manager.get_config(TARGET, bucket)

        assert first == searcher.config
        assert second == searcher.config
        assert searcher.calls == 1
        assert db.get_config(TARGET, bucket) == searcher.config

    def test_miss_without_write_back(self):
        db = InMemoryTileConfigDatabase()
        searcher = CountingSearcher()
        manager = ScheduleConfigManager(
            database=db, policy="database", searcher=searcher, write_back=False
        )
        manager.get_config(TARGET, make_bucket())
        manager.get_config(TARGET, make_bucket())
        assert searcher.calls == 2
        assert len(db) == 0

    def test_miss_without_searcher_uses_heuristic(self):
        manager = ScheduleConfigManager(
            database=InMemoryTileConfigDatabase(), policy="database"
        )
        bucket = make_bucket()
        assert manager.get_config(TARGET, bucket) == heuristic_tile_config(bucket)

    def test_exhausted_search_falls_back_to_heuristic(self):
        db = InMemoryTileConfigDatabase()
        searcher = CountingSearcher(error=SearchExhaustedError("all buckets failed"))
        manager = ScheduleConfigManager(database=db, policy="database", searcher=searcher)
        bucket = make_bucket()

        assert manager.get_config(TARGET, bucket) == heuristic_tile_config(bucket)
        assert len(db) == 0

    def test_database_io_error_falls_back_to_heuristic(self):
        searcher = CountingSearcher()
        manager = ScheduleConfigManager(
            database=BrokenDatabase(), policy="database", searcher=searcher
        )
        bucket = make_bucket()
        assert manager.get_config(TARGET, bucket) == heuristic_tile_config(bucket)
        assert searcher.calls == 0

    def test_unopenable_default_database_falls_back(self, tmp_path, monkeypatch):
        cache_dir = tmp_path / "corrupt"
        cache_dir.mkdir()
        (cache_dir / "tile_configs.json").write_text("{broken")
        monkeypatch.setenv("TILETUNE_CACHE_DIR", str(cache_dir))

        manager = ScheduleConfigManager(policy="database")
        bucket = make_bucket()
        assert manager.database is None
        assert manager.get_config(TARGET, bucket) == heuristic_tile_config(bucket)

    @pytest.mark.parametrize(
        "content",
        [
            b'{"version": 1, "entries": []}',
            b'{"version": 1, "entries": null}',
            b'{"version": 1, "entries": {"\xff": {}}}',
        ],
    )
    def test_malformed_default_database_falls_back(self, tmp_path, monkeypatch, content):
        cache_dir = tmp_path / "malformed"
        cache_dir.mkdir()
        (cache_dir / "tile_configs.json").write_bytes(content)
        monkeypatch.setenv("TILETUNE_CACHE_DIR", str(cache_dir))

        searcher = CountingSearcher()
        manager = ScheduleConfigManager(policy="database", searcher=searcher)
        bucket = BucketInfo((Dimension.uniform(32, 32, "S", False),))
        assert manager.get_config(TARGET, bucket) == TileConfig((32,))
        assert manager.database is None
        assert searcher.calls == 0

    def test_file_database_persists_search_result(self, tmp_path):
        path = tmp_path / "configs.json"
        searcher = CountingSearcher()
        manager = ScheduleConfigManager(
            database=FileTileConfigDatabase(path), policy="database", searcher=searcher
        )
        manager.get_config(TARGET, make_bucket())
        manager.close()

        reopened = FileTileConfigDatabase(path)
        assert reopened.get_config(TARGET, make_bucket()) == searcher.config

    def test_set_searcher_and_database(self):
        manager = ScheduleConfigManager(
            database=InMemoryTileConfigDatabase(), policy="database"
        )
        db = InMemoryTileConfigDatabase()
        searcher = CountingSearcher()
        manager.set_database(db)
        manager.set_searcher(searcher)

        assert manager.database is db
        assert manager.get_config(TARGET, make_bucket()) == searcher.config
        assert db.get_config(TARGET, make_bucket()) == searcher.config

    def test_concurrent_lookups(self):
        db = InMemoryTileConfigDatabase()
        bucket = make_bucket()
        db.set_config(TARGET, bucket, TileConfig((32, 41), score=0.75))
        manager = ScheduleConfigManager(database=db, policy="database")
        results = []

        def lookup():
            results.append(manager.get_config(TARGET, bucket))

        threads = [threading.Thread(target=lookup) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert all(r.tile_sizes == (32, 41) for r in results)


class TestDefaultManager:
    def test_singleton(self):
        assert get_schedule_config_manager() is get_schedule_config_manager()

    def test_reset_creates_new_instance(self):
        first = get_schedule_config_manager()
        reset_schedule_config_manager()
        assert get_schedule_config_manager() is not first

    def test_module_get_config_uses_default_manager(self):
        bucket = make_bucket()
        assert get_config(TARGET, bucket) == heuristic_tile_config(bucket)

    def test_explicit_manager_is_used(self):
        db = InMemoryTileConfigDatabase()
        bucket = make_bucket()
        db.set_config(TARGET, bucket, TileConfig((32, 60), score=0.5))
        manager = ScheduleConfigManager(database=db, policy="database")
        assert get_config(TARGET, bucket, manager=manager).tile_sizes == (32, 60)
