"""FFmpeg filter_complex assembly for canvas compositing.

The graph is a strictly linear overlay chain on top of a solid base canvas
(input 0). Element ``i`` is FFmpeg input ``i + 1``; later elements are drawn
on top of earlier ones, so element order is the z-order.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

from canvas_render.render.layout import LayoutResult, compute_layout
from canvas_render.services.media_fetcher import FetchedMedia

logger = logging.getLogger(__name__)

DEFAULT_DURATION_S = 10
BASE_LABEL = "base"


def estimate_total_duration(media: Sequence[FetchedMedia]) -> int:
    """Estimate output duration in whole seconds.

    Uses the longest probed video duration, rounded up. Images and videos
    without a probed duration count as 0; if nothing has a duration the
    estimate is 10 seconds.
    """
    longest = max((m.duration_s or 0 for m in media if m.kind == "video"), default=0)
    return math.ceil(longest) if longest > 0 else DEFAULT_DURATION_S


def base_source(width: int, height: int, fps: int) -> str:
    """lavfi source for the solid black base canvas."""
    return f"color=c=black:s={width}x{height}:r={fps}"


@dataclass
class FilterGraph:
    """Assembled filter chain."""

    filters: list[str]
    output_label: str
    duration_s: int
    layouts: list[LayoutResult] = field(default_factory=list)

    def to_filter_complex(self) -> str:
        return ";".join(self.filters)


class FilterGraphBuilder:
    """Builds the overlay chain for one canvas."""

    def __init__(self, canvas_width: int, canvas_height: int):
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height

    def layout_for(self, media: FetchedMedia) -> LayoutResult:
        el = media.element
        return compute_layout(
            self.canvas_width,
            self.canvas_height,
            media.width,
            media.height,
            x=el.x,
            y=el.y,
            width=el.width,
            height=el.height,
            fit_mode=el.fit_mode,
        )

    def build(self, media_list: Sequence[FetchedMedia]) -> FilterGraph:
        """Build the filter chain for ``media_list`` in order.

        Args:
            media_list: Fetched media, one per element, in element order

        Returns:
            FilterGraph whose ``output_label`` is the final composite
        """
        filters = [f"[0:v]format=rgba,setsar=1[{BASE_LABEL}]"]
        layouts: list[LayoutResult] = []
        current = BASE_LABEL

        for idx, media in enumerate(media_list):
            input_label = f"in{idx}"
            scaled_label = f"scaled{idx}"
            out_label = f"out{idx}"

            layout = self.layout_for(media)
            layouts.append(layout)

            filters.append(f"[{idx + 1}:v]format=rgba,setsar=1[{input_label}]")
            filters.append(f"[{input_label}]{layout.scale_expression}[{scaled_label}]")
            filters.append(
                f"[{current}][{scaled_label}]overlay={layout.x}:{layout.y}"
                f":format=auto:eval=init[{out_label}]"
            )
            logger.debug(
                f"[GRAPH] element={media.element.id} box={layout.target_width}x{layout.target_height} "
                f"pos=({layout.x},{layout.y}) fit={media.element.fit_mode}"
            )
            current = out_label

        return FilterGraph(
            filters=filters,
            output_label=current,
            duration_s=estimate_total_duration(media_list),
            layouts=layouts,
        )
