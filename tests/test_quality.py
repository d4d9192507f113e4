"""Tests for encoder quality resolution."""

from canvas_render.render.quality import (
    FORMAT_DEFAULTS,
    QualityOverrides,
    ResolvedQuality,
    resolve_quality,
)


class TestResolveQuality:
    """Tests for merging format defaults with overrides."""

    def test_mp4_defaults(self):
        """Test mp4 defaults."""
        q = resolve_quality("mp4")
        assert (q.codec, q.crf, q.preset, q.audio_bitrate) == ("libx264", 23, "medium", "128k")
        assert q.video_bitrate is None
        assert q.fps is None

    def test_mov_defaults(self):
        """Test mov uses higher quality defaults."""
        q = resolve_quality("mov")
        assert (q.codec, q.crf, q.preset, q.audio_bitrate) == ("libx264", 20, "slow", "192k")

    def test_avi_defaults(self):
        """Test avi defaults."""
        assert resolve_quality("avi") == resolve_quality("mp4")

    def test_overrides_win_per_field(self):
        """Test each set override replaces only its own field."""
        q = resolve_quality("mov", QualityOverrides(crf=28, fps=24))
        assert q.crf == 28
        assert q.fps == 24
        assert q.preset == "slow"
        assert q.audio_bitrate == "192k"

    def test_zero_crf_override_is_kept(self):
        """Test a falsy but explicit override still wins."""
        assert resolve_quality("mp4", QualityOverrides(crf=0)).crf == 0

    def test_unknown_format_falls_back_to_x264(self):
        """Test an unknown format still resolves a codec."""
        assert resolve_quality("webm").codec == "libx264"

    def test_defaults_table(self):
        """Test every supported format has defaults."""
        assert set(FORMAT_DEFAULTS) == {"mp4", "mov", "avi"}


class TestFFmpegArgs:
    """Tests for ResolvedQuality.to_ffmpeg_args."""

    def test_default_args(self):
        """Test mp4 default arguments."""
        assert resolve_quality("mp4").to_ffmpeg_args() == [
            "-c:v", "libx264",
            "-b:a", "128k",
            "-preset", "medium",
            "-crf", "23",
        ]

    def test_all_args(self):
        """Test every field maps to its flag."""
        q = ResolvedQuality(
            codec="libx265",
            crf=18,
            preset="fast",
            video_bitrate="3500k",
            audio_bitrate="192k",
            fps=60,
        )
        assert q.to_ffmpeg_args() == [
            "-c:v", "libx265",
            "-b:v", "3500k",
            "-b:a", "192k",
            "-preset", "fast",
            "-crf", "18",
            "-r", "60",
        ]

    def test_codec_only(self):
        """Test unset fields are omitted."""
        assert ResolvedQuality(codec="libvpx-vp9").to_ffmpeg_args() == ["-c:v", "libvpx-vp9"]
