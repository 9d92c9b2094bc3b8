"""Hardware target identification.

A target names the device family tile configs were tuned on. Configs are
stored per target in the database, so a config found on one GPU is never
served to another.
"""

import logging
import platform
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Target:
    """A hardware target that tile configs are tuned for.

    Attributes:
        arch: Backend architecture (e.g. "metal", "cuda", "cpu").
        device_name: Device model name as reported by the backend.
    """

    arch: str
    device_name: str

    @property
    def target_id(self) -> str:
        """Canonical identifier used as part of database keys."""
        name = "_".join(self.device_name.split())
        return f"{self.arch}:{name}"

    @classmethod
    def from_id(cls, target_id: str) -> "Target":
        """Parse a target id produced by ``target_id``.

        Underscores in the device name are kept as written; the round trip
        ``Target.from_id(t.target_id).target_id == t.target_id`` always holds.
        """
        arch, sep, device_name = target_id.partition(":")
        if not sep or not arch:
            raise ValueError(f"Malformed target id: {target_id!r}")
        return cls(arch=arch, device_name=device_name)

    def __str__(self) -> str:
        return self.target_id


def _host_target() -> Target:
    name = platform.processor() or platform.machine() or "unknown"
    return Target(arch="cpu", device_name=name)


@lru_cache(maxsize=1)
def get_default_target() -> Target:
    """Get the target of the current process.

    Uses the MLX Metal device when available, otherwise the host CPU.

    Returns:
        Target for the current machine.

    Example:
        >>> target = get_default_target()
        >>> print(target.target_id)
    """
    try:
        import mlx.core as mx
    except ImportError:
        logger.debug("mlx not installed, using host CPU target")
        return _host_target()

    try:
        if not mx.metal.is_available():
            return _host_target()
        device_info = mx.metal.device_info()
    except (AttributeError, RuntimeError) as e:
        logger.debug(f"Metal device query failed ({e}), using host CPU target")
        return _host_target()

    return Target(arch="metal", device_name=device_info.get("device_name", "Unknown"))
