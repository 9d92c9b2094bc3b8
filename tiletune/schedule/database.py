"""Tile config database keyed by hardware target and bucket.

Stores configurations found by earlier searches so later runs can reuse
them. A lookup that misses returns nothing rather than failing, which tells
the caller it has to search.

File format (version 1):
    {
        "version": 1,
        "entries": {
            "metal:Apple_M2_Max|S:32:32:s;R:32:63:d": {
                "target": "metal:Apple_M2_Max",
                "bucket": [[32, 32, "S", false], [32, 63, "R", true]],
                "config": {"tile_sizes": [32, 40], "score": 0.125}
            }
        }
    }

Entry names are canonical: the target id plus the bucket axes in key order,
so the same bucket always lands on the same name and buckets whose axes
differ only in order stay distinct.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from tiletune.constants import DATABASE_FILE_NAME, DATABASE_FORMAT_VERSION
from tiletune.hardware.target import Target
from tiletune.schedule.bucket import BucketInfo, BucketKey
from tiletune.schedule.tile_config import TileConfig, TileConfigMap
from tiletune.utils.exceptions import ConstructionError, DatabaseIOError

logger = logging.getLogger(__name__)

TargetLike = Union[Target, str]


def target_id_of(target: TargetLike) -> str:
    """Target id for a Target or an already-encoded id string."""
    return target.target_id if isinstance(target, Target) else str(target)


def encode_entry_name(target: TargetLike, key: BucketKey) -> str:
    """Canonical entry name for a (target, bucket key) pair."""
    axes = [
        f"{tag}:{lower}:{upper}:{'d' if dynamic else 's'}"
        for lower, upper, tag, dynamic in key
    ]
    return f"{target_id_of(target)}|{';'.join(axes)}"


class TileConfigDatabase(ABC):
    """Abstract storage for tuned tile configs.

    Concurrent readers are safe. Concurrent writers to the same key must be
    serialized by the caller; no cross-process locking is done.
    """

    @abstractmethod
    def get_configs(
        self,
        target: TargetLike,
        bucket_info: Optional[BucketInfo] = None,
    ) -> TileConfigMap:
        """Get stored configs for a target.

        Args:
            target: Hardware target.
            bucket_info: If given, only the entry for this bucket is returned.

        Returns:
            Mapping from bucket key to config. Empty when nothing is stored.
        """

    @abstractmethod
    def set_config(
        self,
        target: TargetLike,
        bucket_info: BucketInfo,
        config: TileConfig,
    ) -> None:
        """Store (or overwrite) the config of a bucket."""

    @abstractmethod
    def delete_config(self, target: TargetLike, bucket_info: BucketInfo) -> bool:
        """Remove a bucket's config. Returns True if an entry was removed."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored config."""

    def get_config(
        self,
        target: TargetLike,
        bucket_info: BucketInfo,
    ) -> Optional[TileConfig]:
        """Config of a single bucket, or None on a miss."""
        return self.get_configs(target, bucket_info).get(bucket_info.key)

    def close(self) -> None:
        """Release resources held by the database."""


class InMemoryTileConfigDatabase(TileConfigDatabase):
    """Process-local database with no persistence."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, BucketKey], TileConfig] = {}
        self._lock = threading.RLock()

    def get_configs(
        self,
        target: TargetLike,
        bucket_info: Optional[BucketInfo] = None,
    ) -> TileConfigMap:
        target_id = target_id_of(target)
        with self._lock:
            if bucket_info is not None:
                config = self._entries.get((target_id, bucket_info.key))
                return {bucket_info.key: config} if config is not None else {}
            return {
                key: config
                for (tid, key), config in self._entries.items()
                if tid == target_id
            }

    def set_config(
        self,
        target: TargetLike,
        bucket_info: BucketInfo,
        config: TileConfig,
    ) -> None:
        if len(config.tile_sizes) != len(bucket_info):
            raise ConstructionError(
                f"Config has {len(config.tile_sizes)} tile sizes for a "
                f"{len(bucket_info)}-axis bucket"
            )
        with self._lock:
            self._entries[(target_id_of(target), bucket_info.key)] = config
            self._on_change()

    def delete_config(self, target: TargetLike, bucket_info: BucketInfo) -> bool:
        with self._lock:
            removed = self._entries.pop((target_id_of(target), bucket_info.key), None)
            if removed is not None:
                self._on_change()
            return removed is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._on_change()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _on_change(self) -> None:
        pass


class FileTileConfigDatabase(InMemoryTileConfigDatabase):
    """JSON file-backed tile config database.

    The file is read once on construction. With ``autosave`` every write is
    flushed immediately; otherwise call ``save()`` (``close()`` saves pending
    changes).

    Attributes:
        path: Location of the JSON file.
        autosave: Whether writes are flushed to disk immediately.

    Raises:
        DatabaseIOError: If the file exists but cannot be read, is not valid
            JSON, or uses an unknown format version.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, autosave: bool = True):
        super().__init__()
        if path is None:
            from tiletune.config import get_tuning_config

            path = get_tuning_config().resolved_cache_dir() / DATABASE_FILE_NAME
        self.path = Path(path)
        self.autosave = autosave
        self._dirty = False
        self._load()

    def _load(self) -> None:
        """Load entries from disk, replacing in-memory state."""
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DatabaseIOError(f"Tile config database {self.path} is corrupted: {e}") from e
        except OSError as e:
            raise DatabaseIOError(f"Could not read tile config database {self.path}: {e}") from e

        if not isinstance(data, dict) or data.get("version") != DATABASE_FORMAT_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            raise DatabaseIOError(
                f"Unsupported tile config database version {version!r} in {self.path} "
                f"(expected {DATABASE_FORMAT_VERSION})"
            )
        raw_entries = data.get("entries", {})
        if not isinstance(raw_entries, dict):
            raise DatabaseIOError(
                f"Tile config database {self.path} is corrupted: 'entries' must be "
                f"an object, got {type(raw_entries).__name__}"
            )

        entries: dict[tuple[str, BucketKey], TileConfig] = {}
        skipped_count = 0
        for name, entry in raw_entries.items():
            try:
                bucket_info = BucketInfo.from_key(entry["bucket"])
                config = TileConfig.from_dict(entry["config"])
                entries[(entry["target"], bucket_info.key)] = config
            except (KeyError, TypeError, ValueError) as e:
                skipped_count += 1
                logger.debug(f"Skipping invalid database entry '{name}': {e}")
        if skipped_count > 0:
            logger.warning(
                f"Skipped {skipped_count} invalid entries in {self.path}. "
                f"Consider re-tuning and clearing the database."
            )
        if entries:
            logger.debug(f"Loaded {len(entries)} tile configs from {self.path}")

        with self._lock:
            self._entries = entries
            self._dirty = False

    def reload(self) -> None:
        """Discard in-memory state and read the file again."""
        with self._lock:
            self._entries = {}
            self._load()

    def _on_change(self) -> None:
        self._dirty = True
        if self.autosave:
            self.save()

    def _serialize(self) -> dict:
        entries = {}
        for (target_id, key), config in self._entries.items():
            entries[encode_entry_name(target_id, key)] = {
                "target": target_id,
                "bucket": [list(dim_key) for dim_key in key],
                "config": config.to_dict(),
            }
        return {"version": DATABASE_FORMAT_VERSION, "entries": entries}

    def save(self) -> None:
        """Write all entries to disk atomically.

        Raises:
            DatabaseIOError: If the file cannot be written.
        """
        with self._lock:
            data = self._serialize()
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(data, f, indent=2, sort_keys=True)
                    os.replace(tmp_name, self.path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as e:
                raise DatabaseIOError(
                    f"Could not write tile config database {self.path}: {e}"
                ) from e
            self._dirty = False

    def close(self) -> None:
        """Flush unsaved changes."""
        with self._lock:
            if self._dirty:
                self.save()
