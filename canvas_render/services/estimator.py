"""Heuristic processing-time estimate for a canvas.

Used by the job layer to decide between answering synchronously and
queueing. The estimate is a conservative upper bound built from output
resolution, element count and type, and source sizes reported by HEAD
requests.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from canvas_render.config import Settings, get_settings
from canvas_render.schemas.canvas import CanvasSpec

logger = logging.getLogger(__name__)

BASE_MS = 2000
RESOLUTION_STEP_MS = 3000
RESOLUTION_CAP_MS = 8000
VIDEO_ELEMENT_MS = 2000
IMAGE_ELEMENT_MS = 500
NETWORK_MS_PER_MB = 60
NETWORK_CAP_MS = 12000
REFERENCE_PIXELS = 1280 * 720


@dataclass
class EstimationResult:
    estimated_ms: int
    reasons: list[str] = field(default_factory=list)

    def is_quick(self, threshold_ms: int) -> bool:
        return self.estimated_ms <= threshold_ms


class ProcessingEstimator:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client

    async def estimate(self, canvas: CanvasSpec) -> EstimationResult:
        reasons = [f"base:{BASE_MS}"]

        resolution_factor = (canvas.width * canvas.height) / REFERENCE_PIXELS
        resolution_ms = min(
            RESOLUTION_CAP_MS, max(0, round((resolution_factor - 1) * RESOLUTION_STEP_MS))
        )
        if resolution_ms > 0:
            reasons.append(f"resolution:{resolution_ms}")

        elements_ms = sum(
            VIDEO_ELEMENT_MS if el.type == "video" else IMAGE_ELEMENT_MS for el in canvas.elements
        )
        reasons.append(f"elements:{elements_ms}")

        size_mb = await self.estimate_total_size_mb(canvas)
        network_ms = min(NETWORK_CAP_MS, round(size_mb * NETWORK_MS_PER_MB))
        if network_ms > 0:
            reasons.append(f"network:{network_ms}")

        total = BASE_MS + resolution_ms + elements_ms + network_ms
        logger.debug(f"[ESTIMATE] {total}ms ({', '.join(reasons)})")
        return EstimationResult(estimated_ms=total, reasons=reasons)

    async def estimate_total_size_mb(self, canvas: CanvasSpec) -> float:
        """Sum Content-Length of all sources; unknown sizes count as 0."""
        if self._client is not None:
            sizes = await asyncio.gather(*(self._head_size_mb(self._client, el.source) for el in canvas.elements))
            return sum(sizes)

        async with httpx.AsyncClient(
            timeout=self.settings.estimator_head_timeout_s,
            follow_redirects=True,
            max_redirects=self.settings.estimator_max_redirects,
        ) as client:
            sizes = await asyncio.gather(*(self._head_size_mb(client, el.source) for el in canvas.elements))
        return sum(sizes)

    async def _head_size_mb(self, client: httpx.AsyncClient, url: str) -> float:
        try:
            response = await client.head(url)
        except httpx.HTTPError as e:
            logger.debug(f"[ESTIMATE] HEAD failed for {url}: {e}")
            return 0.0
        if not 200 <= response.status_code < 400:
            return 0.0
        try:
            length = int(response.headers.get("content-length", "0"))
        except ValueError:
            return 0.0
        return length / (1024 * 1024) if length > 0 else 0.0
