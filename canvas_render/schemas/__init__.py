from canvas_render.schemas.canvas import (
    SUPPORTED_FORMATS,
    CanvasSpec,
    Element,
    ElementType,
    FitMode,
)

__all__ = [
    "SUPPORTED_FORMATS",
    "CanvasSpec",
    "Element",
    "ElementType",
    "FitMode",
]
