"""Request and result schemas for canvas rendering."""

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SUPPORTED_FORMATS = ("mp4", "mov", "avi")

MAX_ELEMENTS = 10
MAX_CANVAS_WIDTH = 7680
MAX_CANVAS_HEIGHT = 4320
MIN_ASPECT_RATIO = 0.1
MAX_ASPECT_RATIO = 10.0

_PERCENT_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*%\s*$")

ElementType = Literal["video", "image"]
FitMode = Literal["auto", "contain", "cover", "fill"]


class Element(BaseModel):
    """One image or video layer placed on the canvas."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: ElementType
    source: str
    track: int = Field(default=0, ge=0)
    x: str | None = None
    y: str | None = None
    width: str | None = None
    height: str | None = None
    fit_mode: FitMode = "auto"

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("source must be an http(s) URL")
        return v

    @field_validator("x", "y", "width", "height")
    @classmethod
    def validate_percentage(cls, v: str | None) -> str | None:
        if v is None:
            return v
        match = _PERCENT_RE.match(v)
        if not match:
            raise ValueError(f"expected a percentage like '50%', got {v!r}")
        if float(match.group(1)) > 100:
            raise ValueError(f"percentage must be between 0% and 100%, got {v!r}")
        return v


class CanvasSpec(BaseModel):
    """Canvas description: output format, pixel size and ordered elements.

    ``output_format`` is checked by the processor rather than here so an
    unsupported value fails as :class:`UnsupportedFormatError`.
    """

    model_config = ConfigDict(frozen=True)

    output_format: str
    width: int = Field(ge=1, le=MAX_CANVAS_WIDTH)
    height: int = Field(ge=1, le=MAX_CANVAS_HEIGHT)
    elements: list[Element] = Field(min_length=1, max_length=MAX_ELEMENTS)

    @model_validator(mode="after")
    def validate_aspect_ratio(self) -> "CanvasSpec":
        ratio = self.width / self.height
        if not MIN_ASPECT_RATIO <= ratio <= MAX_ASPECT_RATIO:
            raise ValueError(
                f"canvas aspect ratio {ratio:.3f} outside "
                f"[{MIN_ASPECT_RATIO}, {MAX_ASPECT_RATIO}]"
            )
        return self
