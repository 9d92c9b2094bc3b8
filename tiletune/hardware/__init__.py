"""Hardware target detection for tiletune."""

from tiletune.hardware.target import (
    Target,
    get_default_target,
)

__all__ = [
    "Target",
    "get_default_target",
]
