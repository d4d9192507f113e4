"""Per-format encoder defaults and caller overrides."""

from dataclasses import dataclass, fields
from typing import Literal, Optional

Preset = Literal[
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow",
]
VideoCodec = Literal["libx264", "libx265", "libvpx-vp9", "libaom-av1"]


@dataclass(frozen=True)
class QualityDefaults:
    """Encoder defaults for one container format."""

    codec: str
    crf: Optional[int] = None
    preset: Optional[str] = None
    video_bitrate: Optional[str] = None
    audio_bitrate: Optional[str] = None
    fps: Optional[int] = None


@dataclass(frozen=True)
class QualityOverrides:
    """Caller-supplied encoder settings; ``None`` keeps the default."""

    codec: Optional[VideoCodec] = None
    crf: Optional[int] = None  # 18-28 typical for x264
    preset: Optional[Preset] = None
    video_bitrate: Optional[str] = None  # e.g. "3500k"
    audio_bitrate: Optional[str] = None  # e.g. "128k"
    fps: Optional[int] = None


@dataclass(frozen=True)
class ResolvedQuality:
    """Effective encoder settings for a run."""

    codec: str
    crf: Optional[int] = None
    preset: Optional[str] = None
    video_bitrate: Optional[str] = None
    audio_bitrate: Optional[str] = None
    fps: Optional[int] = None

    def to_ffmpeg_args(self) -> list[str]:
        args = ["-c:v", self.codec]
        if self.video_bitrate:
            args.extend(["-b:v", self.video_bitrate])
        if self.audio_bitrate:
            args.extend(["-b:a", self.audio_bitrate])
        if self.preset:
            args.extend(["-preset", self.preset])
        if self.crf is not None:
            args.extend(["-crf", str(self.crf)])
        if self.fps:
            args.extend(["-r", str(self.fps)])
        return args


FORMAT_DEFAULTS: dict[str, QualityDefaults] = {
    "mp4": QualityDefaults(codec="libx264", crf=23, preset="medium", audio_bitrate="128k"),
    "mov": QualityDefaults(codec="libx264", crf=20, preset="slow", audio_bitrate="192k"),
    "avi": QualityDefaults(codec="libx264", crf=23, preset="medium", audio_bitrate="128k"),
}


def resolve_quality(output_format: str, overrides: Optional[QualityOverrides] = None) -> ResolvedQuality:
    """Merge format defaults with overrides, field by field; overrides win."""
    defaults = FORMAT_DEFAULTS.get(output_format, QualityDefaults(codec="libx264"))
    overrides = overrides or QualityOverrides()
    merged = {}
    for f in fields(ResolvedQuality):
        override = getattr(overrides, f.name)
        merged[f.name] = override if override is not None else getattr(defaults, f.name)
    return ResolvedQuality(**merged)
