"""
Tests for ffprobe-based media info extraction.

Test cases:
1. Parse video dimensions, duration and frame rate
2. Parse still images
3. Prefer format duration over stream duration
4. Surface ffprobe failures as MediaProbeError
"""

import asyncio

import pytest

from canvas_render.exceptions import MediaProbeError
from canvas_render.utils.media_info import (
    build_ffprobe_command,
    parse_ffprobe_output,
    probe_media,
)


class _FakeProbeProcess:
    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
        self._stdout = stdout
        self._stderr = stderr
        self.returncode = returncode

    async def communicate(self):
        return self._stdout, self._stderr


class TestParseFFprobeOutput:
    """Test ffprobe JSON parsing."""

    def test_video_with_audio(self):
        """Test a typical video stream with audio."""
        info = parse_ffprobe_output({
            "streams": [
                {
                    "codec_type": "video",
                    "codec_name": "h264",
                    "width": 1920,
                    "height": 1080,
                    "r_frame_rate": "30000/1001",
                    "duration": "12.000",
                },
                {"codec_type": "audio", "codec_name": "aac"},
            ],
            "format": {"duration": "12.345"},
        })

        assert (info.width, info.height) == (1920, 1080)
        assert info.duration_s == pytest.approx(12.345)
        assert info.fps == pytest.approx(29.97, rel=1e-3)
        assert info.video_codec == "h264"
        assert info.has_video
        assert info.has_audio

    def test_still_image(self):
        """Test a PNG probe has dimensions and no duration."""
        info = parse_ffprobe_output({
            "streams": [{"codec_type": "video", "codec_name": "png", "width": 640, "height": 360}],
            "format": {},
        })
        assert (info.width, info.height) == (640, 360)
        assert info.duration_s is None
        assert not info.has_audio

    def test_first_video_stream_wins(self):
        """Test later video streams (cover art) are ignored."""
        info = parse_ffprobe_output({
            "streams": [
                {"codec_type": "video", "width": 1280, "height": 720},
                {"codec_type": "video", "width": 300, "height": 300},
            ],
        })
        assert (info.width, info.height) == (1280, 720)

    def test_stream_duration_when_format_missing(self):
        """Test the stream duration is used without a format duration."""
        info = parse_ffprobe_output({
            "streams": [{"codec_type": "video", "width": 10, "height": 10, "duration": "3.5"}],
        })
        assert info.duration_s == pytest.approx(3.5)

    def test_bad_values_ignored(self):
        """Test malformed numbers do not raise."""
        info = parse_ffprobe_output({
            "streams": [{"codec_type": "video", "width": "wide", "r_frame_rate": "0/0", "duration": "N/A"}],
            "format": {"duration": "N/A"},
        })
        assert info.width is None
        assert info.fps is None
        assert info.duration_s is None

    def test_empty(self):
        """Test empty output."""
        info = parse_ffprobe_output({})
        assert not info.has_video
        assert info.width is None


class TestProbeMedia:
    """Test probe_media with a fake ffprobe process."""

    def test_command(self):
        """Test the ffprobe command line."""
        assert build_ffprobe_command("ffprobe", "/tmp/a.mp4") == [
            "ffprobe", "-v", "quiet", "-print_format", "json",
            "-show_format", "-show_streams", "/tmp/a.mp4",
        ]

    @pytest.mark.asyncio
    async def test_probe_success(self, monkeypatch):
        """Test JSON output is parsed."""
        payload = b'{"streams": [{"codec_type": "video", "width": 800, "height": 600}]}'

        async def fake_exec(*cmd, **kwargs):
            return _FakeProbeProcess(stdout=payload)

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
        info = await probe_media("/tmp/a.png")
        assert (info.width, info.height) == (800, 600)

    @pytest.mark.asyncio
    async def test_probe_nonzero_exit(self, monkeypatch):
        """Test a failing ffprobe raises MediaProbeError with stderr."""

        async def fake_exec(*cmd, **kwargs):
            return _FakeProbeProcess(stderr=b"Invalid data found when processing input", returncode=1)

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
        with pytest.raises(MediaProbeError) as exc_info:
            await probe_media("/tmp/broken.mp4")

        assert exc_info.value.code == "MEDIA_PROBE_FAILED"
        assert "Invalid data" in exc_info.value.stderr
        assert exc_info.value.details["path"] == "/tmp/broken.mp4"

    @pytest.mark.asyncio
    async def test_probe_bad_json(self, monkeypatch):
        """Test unparseable output raises MediaProbeError."""

        async def fake_exec(*cmd, **kwargs):
            return _FakeProbeProcess(stdout=b"not json")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
        with pytest.raises(MediaProbeError):
            await probe_media("/tmp/a.png")

    @pytest.mark.asyncio
    async def test_probe_missing_binary(self):
        """Test a missing ffprobe binary raises MediaProbeError."""
        with pytest.raises(MediaProbeError):
            await probe_media("/tmp/a.png", ffprobe_path="/nonexistent/ffprobe")
