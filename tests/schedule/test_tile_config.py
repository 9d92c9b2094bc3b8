"""Tests for TileConfig."""

import math

import pytest

from tiletune.schedule import BucketInfo, Dimension, TileConfig
from tiletune.utils.exceptions import ConstructionError


class TestTileConfig:
    def test_tile_sizes_normalized_to_int_tuple(self):
        config = TileConfig(tile_sizes=[32, 64], score=1)
        assert config.tile_sizes == (32, 64)
        assert isinstance(config.score, float)

    def test_empty_fails(self):
        with pytest.raises(ConstructionError):
            TileConfig(tile_sizes=())

    def test_non_numeric_fails(self):
        with pytest.raises(ConstructionError):
            TileConfig(tile_sizes=("a",))

    def test_is_measured(self):
        assert TileConfig((1,), score=0.5).is_measured
        assert not TileConfig((1,)).is_measured
        assert not TileConfig((1,), score=math.inf).is_measured

    def test_dict_round_trip(self):
        config = TileConfig((32, 40), score=0.125)
        assert TileConfig.from_dict(config.to_dict()) == config

    def test_fits(self):
        bucket = BucketInfo((Dimension.uniform(32, 63, "R", True),))
        assert TileConfig((40,)).fits(bucket)
        assert not TileConfig((64,)).fits(bucket)
        assert not TileConfig((40, 1)).fits(bucket)

    def test_str_joins_sizes(self):
        assert str(TileConfig((32, 64))) == "32, 64"
