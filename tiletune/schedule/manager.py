"""Schedule config manager: chooses how a bucket's tile config is produced.

Policies:
    "default":  always answer from the tiling heuristic.
    "database": answer from the database; on a miss run the searcher (or the
                heuristic when no searcher is set) and optionally store the
                result.

Entry points take an explicit manager; ``get_schedule_config_manager()``
supplies a lazily created process-wide default. Policy changes must not
race with in-flight ``get_config`` calls that depend on the old policy;
callers serialize configuration changes against active searches.
"""

from __future__ import annotations

import atexit
import logging
import threading
from typing import TYPE_CHECKING, Any, Optional, Union

from tiletune.config import get_tuning_config
from tiletune.constants import SchedulePolicy
from tiletune.hardware.target import get_default_target
from tiletune.schedule.bucket import BucketInfo
from tiletune.schedule.database import (
    FileTileConfigDatabase,
    TargetLike,
    TileConfigDatabase,
)
from tiletune.schedule.tile_config import TileConfig
from tiletune.schedule.tiling import heuristic_tile_config
from tiletune.utils.exceptions import (
    ConfigurationError,
    DatabaseIOError,
    SearchExhaustedError,
)
from tiletune.utils.logging import log_soft_failure

if TYPE_CHECKING:
    from tiletune.search.searcher import ScheduleConfigSearcher

logger = logging.getLogger(__name__)


class ScheduleConfigManager:
    """Produces tile configs according to the active policy.

    Args:
        database: Config store. When None, a FileTileConfigDatabase in the
            configured cache directory is opened on first use.
        policy: Initial policy name.
        searcher: Searcher run on a database miss. When None, misses are
            answered by the heuristic.
        write_back: Store search results on a miss. Defaults to the tuning
            config.

    Example:
        >>> manager = ScheduleConfigManager(database=FileTileConfigDatabase(path))
        >>> manager.set_policy("database")
        >>> config = manager.get_config(get_default_target(), bucket_info)
    """

    def __init__(
        self,
        database: Optional[TileConfigDatabase] = None,
        policy: Union[SchedulePolicy, str] = SchedulePolicy.DEFAULT,
        searcher: Optional[ScheduleConfigSearcher] = None,
        write_back: Optional[bool] = None,
    ):
        self._lock = threading.RLock()
        self._database = database
        self._database_failed = False
        self._policy = self._parse_policy(policy)
        self._searcher = searcher
        self.write_back = (
            write_back if write_back is not None else get_tuning_config().write_back
        )

    @staticmethod
    def _parse_policy(name: Union[SchedulePolicy, str]) -> SchedulePolicy:
        try:
            return SchedulePolicy(name)
        except ValueError:
            raise ConfigurationError(
                f"Unknown schedule policy '{name}'. "
                f"Valid values: {', '.join(p.value for p in SchedulePolicy)}"
            ) from None

    @property
    def policy(self) -> SchedulePolicy:
        with self._lock:
            return self._policy

    def set_policy(self, name: Union[SchedulePolicy, str]) -> None:
        """Switch the active policy.

        Raises:
            ConfigurationError: If the policy name is unknown.
        """
        policy = self._parse_policy(name)
        with self._lock:
            self._policy = policy
        logger.debug(f"Schedule policy set to '{policy.value}'")

    def set_database(self, database: Optional[TileConfigDatabase]) -> None:
        with self._lock:
            self._database = database
            self._database_failed = False

    def set_searcher(self, searcher: Optional[ScheduleConfigSearcher]) -> None:
        with self._lock:
            self._searcher = searcher

    @property
    def database(self) -> Optional[TileConfigDatabase]:
        """Active database, opened on first use.

        Returns None if the default database could not be opened.
        """
        with self._lock:
            if self._database is None and not self._database_failed:
                try:
                    self._database = FileTileConfigDatabase()
                except DatabaseIOError as e:
                    self._database_failed = True
                    logger.warning(
                        f"Could not open tile config database ({e}). "
                        f"Falling back to the heuristic policy."
                    )
            return self._database

    def get_config(
        self,
        target: Optional[TargetLike],
        bucket_info: BucketInfo,
        computation: Any = None,
    ) -> TileConfig:
        """Tile config for a bucket on a target.

        Args:
            target: Hardware target. None means the current machine.
            bucket_info: The bucket to configure.
            computation: Computation handed to the searcher on a miss.

        Returns:
            The cached, searched or heuristic TileConfig.
        """
        if target is None:
            target = get_default_target()
        with self._lock:
            policy = self._policy
            searcher = self._searcher

        if policy == SchedulePolicy.DEFAULT:
            return heuristic_tile_config(bucket_info)

        database = self.database
        if database is None:
            return heuristic_tile_config(bucket_info)

        try:
            cached = database.get_config(target, bucket_info)
        except DatabaseIOError as e:
            logger.warning(f"Tile config lookup failed ({e}), using heuristic")
            return heuristic_tile_config(bucket_info)
        if cached is not None:
            logger.debug(f"Database hit for {bucket_info} on {target}")
            return cached

        if searcher is None:
            return heuristic_tile_config(bucket_info)

        try:
            config = searcher.search_bucket(bucket_info, computation)
        except SearchExhaustedError as e:
            log_soft_failure("schedule search", e, context=str(bucket_info))
            return heuristic_tile_config(bucket_info)

        if self.write_back:
            try:
                database.set_config(target, bucket_info, config)
            except DatabaseIOError as e:
                logger.warning(f"Could not store tuned config for {bucket_info}: {e}")
        return config

    def close(self) -> None:
        """Flush and release the database."""
        with self._lock:
            database = self._database
        if database is None:
            return
        try:
            database.close()
        except DatabaseIOError as e:
            logger.warning(f"Could not flush tile config database: {e}")


# Global manager instance with thread-safe initialization
_manager: Optional[ScheduleConfigManager] = None
_manager_lock = threading.Lock()


def get_schedule_config_manager() -> ScheduleConfigManager:
    """Get the process-wide schedule config manager.

    Thread-safe singleton accessor. The manager is closed at interpreter
    exit.

    Returns:
        Singleton ScheduleConfigManager instance.
    """
    global _manager
    if _manager is None:
        with _manager_lock:
            # Double-check locking pattern
            if _manager is None:
                _manager = ScheduleConfigManager()
                atexit.register(_manager.close)
    return _manager


def reset_schedule_config_manager() -> None:
    """Close and drop the process-wide manager; the next access recreates it."""
    global _manager
    with _manager_lock:
        manager, _manager = _manager, None
    if manager is not None:
        atexit.unregister(manager.close)
        manager.close()


def get_config(
    target: Optional[TargetLike],
    bucket_info: BucketInfo,
    computation: Any = None,
    manager: Optional[ScheduleConfigManager] = None,
) -> TileConfig:
    """Tile config for a bucket using ``manager`` or the process default."""
    if manager is None:
        manager = get_schedule_config_manager()
    return manager.get_config(target, bucket_info, computation)
