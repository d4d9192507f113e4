from canvas_render.render.filter_graph import FilterGraph, FilterGraphBuilder, estimate_total_duration
from canvas_render.render.layout import LayoutResult, compute_layout
from canvas_render.render.processor import (
    ProcessingResult,
    ProcessOptions,
    RunState,
    VideoProcessor,
)
from canvas_render.render.progress import ProcessingProgress, ProgressChannel
from canvas_render.render.quality import QualityOverrides, resolve_quality

__all__ = [
    "VideoProcessor",
    "ProcessOptions",
    "ProcessingResult",
    "ProcessingProgress",
    "ProgressChannel",
    "RunState",
    "FilterGraph",
    "FilterGraphBuilder",
    "LayoutResult",
    "QualityOverrides",
    "compute_layout",
    "estimate_total_duration",
    "resolve_quality",
]
