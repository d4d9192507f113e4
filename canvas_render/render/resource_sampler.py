"""Best-effort CPU and memory sampling of the FFmpeg process."""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceSample:
    cpu_percent: int
    memory_mb: int


class ResourceSampler(Protocol):
    def sample(self) -> Optional[ResourceSample]:
        """Return the current usage, or None when no sample is available."""
        ...


class NullResourceSampler:
    """Sampler used when the process cannot be observed."""

    def sample(self) -> Optional[ResourceSample]:
        return None


class PsutilResourceSampler:
    """Samples one process through psutil.

    The first CPU reading of a fresh ``psutil.Process`` is always 0; later
    readings cover the interval since the previous call.
    """

    def __init__(self, pid: int):
        self._process = psutil.Process(pid)
        self._process.cpu_percent(interval=None)

    def sample(self) -> Optional[ResourceSample]:
        with self._process.oneshot():
            cpu = self._process.cpu_percent(interval=None)
            rss = self._process.memory_info().rss
        return ResourceSample(cpu_percent=round(cpu), memory_mb=round(rss / (1024 * 1024)))


def create_resource_sampler(pid: Optional[int]) -> ResourceSampler:
    """Build a sampler for ``pid``, or a null sampler if that fails."""
    if not pid:
        return NullResourceSampler()
    try:
        return PsutilResourceSampler(pid)
    except (psutil.Error, OSError) as e:
        logger.debug(f"[RESOURCE] Sampling unavailable for pid {pid}: {e}")
        return NullResourceSampler()
