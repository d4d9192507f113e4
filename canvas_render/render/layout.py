"""Pixel layout from percentage geometry and fit modes.

Pure functions, no I/O. Every size and offset is rounded to whole pixels
(half away from zero) before it is embedded in an FFmpeg expression.
"""

import math
from dataclasses import dataclass
from typing import Optional

from canvas_render.schemas.canvas import FitMode

SCALE_FLAGS = "lanczos"
PAD_COLOR = "0x00000000"  # transparent black


def round_px(value: float) -> int:
    """Round to the nearest pixel, halves rounding up."""
    return math.floor(value + 0.5)


def parse_percentage(value: Optional[str], default: Optional[float] = None) -> Optional[float]:
    """Parse ``"37.5%"`` into a fraction clamped to [0, 1].

    Args:
        value: Percentage string; the trailing ``%`` is optional
        default: Returned when ``value`` is None or empty

    Raises:
        ValueError: If the string is not numeric
    """
    if value is None or not value.strip():
        return default
    number = float(value.strip().rstrip("%").strip())
    if math.isnan(number):
        raise ValueError(f"Invalid percentage: {value!r}")
    return max(0.0, min(100.0, number)) / 100


@dataclass(frozen=True)
class ScaleGeometry:
    """Resolved scale step for one element.

    ``mode`` is ``fill`` (stretch), ``cover`` (scale then crop at
    ``offset_x``/``offset_y``) or ``contain`` (scale then pad at the offsets).
    """

    mode: str
    scaled_width: int
    scaled_height: int
    target_width: int
    target_height: int
    offset_x: int = 0
    offset_y: int = 0

    def to_expression(self) -> str:
        scale = f"scale={self.scaled_width}:{self.scaled_height}:flags={SCALE_FLAGS}"
        if self.mode == "cover":
            return (
                f"{scale},crop={self.target_width}:{self.target_height}"
                f":{self.offset_x}:{self.offset_y}"
            )
        if self.mode == "contain":
            return (
                f"{scale},pad={self.target_width}:{self.target_height}"
                f":{self.offset_x}:{self.offset_y}:color={PAD_COLOR}"
            )
        return scale


@dataclass(frozen=True)
class LayoutResult:
    """Pixel placement of one element on the canvas."""

    target_width: int
    target_height: int
    x: int
    y: int
    geometry: ScaleGeometry

    @property
    def scale_expression(self) -> str:
        return self.geometry.to_expression()


def compute_target_size(
    canvas_width: int,
    canvas_height: int,
    media_width: Optional[int] = None,
    media_height: Optional[int] = None,
    width_pct: Optional[str] = None,
    height_pct: Optional[str] = None,
    fit_mode: FitMode = "auto",
) -> tuple[int, int]:
    """Compute the element box in pixels.

    Width and height default to 100% of the canvas. In ``auto`` mode with
    known natural dimensions the box shrinks along one axis to match the
    media aspect ratio.

    Returns:
        Tuple of (target_width, target_height), each at least 1
    """
    target_w = round_px(parse_percentage(width_pct, 1.0) * canvas_width)
    target_h = round_px(parse_percentage(height_pct, 1.0) * canvas_height)

    if fit_mode == "auto" and media_width and media_height and target_w > 0 and target_h > 0:
        aspect = media_width / media_height
        box_aspect = target_w / target_h
        if aspect > box_aspect:
            target_h = round_px(target_w / aspect)
        else:
            target_w = round_px(target_h * aspect)

    return max(1, target_w), max(1, target_h)


def compute_position(
    canvas_width: int,
    canvas_height: int,
    target_width: int,
    target_height: int,
    x_pct: Optional[str] = None,
    y_pct: Optional[str] = None,
) -> tuple[int, int]:
    """Compute the top-left offset of the element box.

    The percentage is a fraction of the remaining travel space
    (canvas minus box), so 50% always centers the box.
    """
    travel_x = max(0, canvas_width - target_width)
    travel_y = max(0, canvas_height - target_height)
    x = round_px(parse_percentage(x_pct, 0.0) * travel_x)
    y = round_px(parse_percentage(y_pct, 0.0) * travel_y)
    return x, y


def compute_scale_geometry(
    media_width: Optional[int],
    media_height: Optional[int],
    target_width: int,
    target_height: int,
    fit_mode: FitMode,
) -> ScaleGeometry:
    """Resolve how the media is scaled into its box."""
    if fit_mode == "fill" or not media_width or not media_height:
        return ScaleGeometry("fill", target_width, target_height, target_width, target_height)

    aspect = media_width / media_height
    box_aspect = target_width / target_height

    if fit_mode == "cover":
        if aspect < box_aspect:
            scaled_w, scaled_h = target_width, round_px(target_width / aspect)
        else:
            scaled_w, scaled_h = round_px(target_height * aspect), target_height
        scaled_w, scaled_h = max(scaled_w, target_width), max(scaled_h, target_height)
        return ScaleGeometry(
            "cover",
            scaled_w,
            scaled_h,
            target_width,
            target_height,
            offset_x=max(0, round_px((scaled_w - target_width) / 2)),
            offset_y=max(0, round_px((scaled_h - target_height) / 2)),
        )

    # contain / auto: fit inside, pad the rest
    if aspect > box_aspect:
        scaled_w, scaled_h = target_width, round_px(target_width / aspect)
    else:
        scaled_w, scaled_h = round_px(target_height * aspect), target_height
    scaled_w = min(target_width, max(1, scaled_w))
    scaled_h = min(target_height, max(1, scaled_h))
    return ScaleGeometry(
        "contain",
        scaled_w,
        scaled_h,
        target_width,
        target_height,
        offset_x=max(0, round_px((target_width - scaled_w) / 2)),
        offset_y=max(0, round_px((target_height - scaled_h) / 2)),
    )


def scale_expression(
    media_width: Optional[int],
    media_height: Optional[int],
    target_width: int,
    target_height: int,
    fit_mode: FitMode,
) -> str:
    """Build the FFmpeg scale/crop/pad expression for one element."""
    return compute_scale_geometry(
        media_width, media_height, target_width, target_height, fit_mode
    ).to_expression()


def compute_layout(
    canvas_width: int,
    canvas_height: int,
    media_width: Optional[int],
    media_height: Optional[int],
    *,
    x: Optional[str] = None,
    y: Optional[str] = None,
    width: Optional[str] = None,
    height: Optional[str] = None,
    fit_mode: FitMode = "auto",
) -> LayoutResult:
    """Size, position and scale one element on the canvas."""
    target_w, target_h = compute_target_size(
        canvas_width, canvas_height, media_width, media_height, width, height, fit_mode
    )
    pos_x, pos_y = compute_position(canvas_width, canvas_height, target_w, target_h, x, y)
    geometry = compute_scale_geometry(media_width, media_height, target_w, target_h, fit_mode)
    return LayoutResult(target_w, target_h, pos_x, pos_y, geometry)
