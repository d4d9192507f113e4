"""FFmpeg availability check."""

import logging
import re
import subprocess
from typing import Optional

from canvas_render.config import get_settings

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"ffmpeg version (\S+)")


def check_ffmpeg(ffmpeg_path: Optional[str] = None) -> dict[str, str]:
    """
    Run ``ffmpeg -version`` and report health.

    Returns:
        ``{"status": "healthy", "version": ...}`` or
        ``{"status": "unhealthy", "error": ...}``
    """
    ffmpeg_path = ffmpeg_path or get_settings().ffmpeg_path
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.error(f"FFmpeg health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}

    if result.returncode != 0:
        logger.error(f"FFmpeg health check failed: {result.stderr}")
        return {"status": "unhealthy", "error": result.stderr.strip() or f"exit code {result.returncode}"}

    match = _VERSION_RE.search(result.stdout)
    return {"status": "healthy", "version": match.group(1) if match else "unknown"}
