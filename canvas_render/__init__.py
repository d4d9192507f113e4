"""Composite percentage-positioned image/video elements into one video with FFmpeg."""

__version__ = "0.1.0"
