"""Media file information utilities using FFprobe."""

import asyncio
import json
import logging
from dataclasses import dataclass

from canvas_render.exceptions import MediaProbeError

logger = logging.getLogger(__name__)


@dataclass
class MediaInfo:
    """Media file information."""

    width: int | None = None
    height: int | None = None
    duration_s: float | None = None
    fps: float | None = None
    video_codec: str | None = None
    has_video: bool = False
    has_audio: bool = False


def build_ffprobe_command(ffprobe_path: str, file_path: str) -> list[str]:
    return [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        file_path,
    ]


async def _run_ffprobe(ffprobe_path: str, file_path: str) -> dict:
    """Run ffprobe and return parsed JSON."""
    cmd = build_ffprobe_command(ffprobe_path, file_path)
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise MediaProbeError(file_path, stderr=str(e)) from e

    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise MediaProbeError(file_path, stderr=stderr.decode("utf-8", errors="replace"))

    try:
        return json.loads(stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(file_path, stderr=f"Failed to parse ffprobe output: {e}") from e


def parse_ffprobe_output(data: dict) -> MediaInfo:
    """Extract dimensions and duration from ffprobe JSON.

    The first video stream wins; format duration is preferred over the
    stream duration.
    """
    info = MediaInfo()

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not info.has_video:
            info.has_video = True
            if isinstance(stream.get("width"), int):
                info.width = stream["width"]
            if isinstance(stream.get("height"), int):
                info.height = stream["height"]
            info.video_codec = stream.get("codec_name")

            r_frame_rate = stream.get("r_frame_rate", "0/1")
            if "/" in r_frame_rate:
                num, den = r_frame_rate.split("/", 1)
                try:
                    if int(den) > 0:
                        info.fps = int(num) / int(den)
                except ValueError:
                    pass

            if "duration" in stream:
                try:
                    info.duration_s = float(stream["duration"])
                except (TypeError, ValueError):
                    pass

        elif codec_type == "audio":
            info.has_audio = True

    format_info = data.get("format", {})
    if "duration" in format_info:
        try:
            info.duration_s = float(format_info["duration"])
        except (TypeError, ValueError):
            pass

    return info


async def probe_media(file_path: str, ffprobe_path: str = "ffprobe") -> MediaInfo:
    """
    Probe a media file for natural width, height and duration.

    Args:
        file_path: Path to media file
        ffprobe_path: ffprobe executable

    Returns:
        MediaInfo for the file

    Raises:
        MediaProbeError: If ffprobe fails or its output cannot be parsed
    """
    data = await _run_ffprobe(ffprobe_path, file_path)
    info = parse_ffprobe_output(data)
    logger.debug(
        f"[PROBE] {file_path}: {info.width}x{info.height}, duration={info.duration_s}"
    )
    return info
