from dataclasses import dataclass
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "canvas-render"
    app_version: str = "0.1.0"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Scratch space for downloaded inputs and rendered outputs
    temp_dir: str = "/tmp/video-processing"

    # Processing
    processing_timeout_ms: int = 600_000  # 10 minutes, <= 0 disables the deadline
    quick_processing_threshold_ms: int = 30_000
    render_fps: int = 30
    log_window_lines: int = 200
    resource_sample_interval_s: float = 1.0
    progress_queue_size: int = 64
    progress_close_timeout_s: float = 5.0

    # Media download
    download_timeout_s: float = 30.0
    download_max_redirects: int = 5

    # Estimator
    estimator_head_timeout_s: float = 1.5
    estimator_max_redirects: int = 2


@lru_cache
def get_settings() -> Settings:
    return Settings()


@dataclass(frozen=True)
class ProcessorConfig:
    """Immutable per-processor configuration.

    Built once from :class:`Settings` and handed to every run, so concurrent
    runs never share mutable engine state.
    """

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    temp_dir: str = "/tmp/video-processing"
    timeout_ms: int = 600_000
    fps: int = 30
    log_window_lines: int = 200
    resource_sample_interval_s: float = 1.0
    progress_queue_size: int = 64
    progress_close_timeout_s: float = 5.0
    download_timeout_s: float = 30.0
    download_max_redirects: int = 5
    user_agent: str = "canvas-render/0.1.0"

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ProcessorConfig":
        settings = settings or get_settings()
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            temp_dir=settings.temp_dir,
            timeout_ms=settings.processing_timeout_ms,
            fps=settings.render_fps,
            log_window_lines=settings.log_window_lines,
            resource_sample_interval_s=settings.resource_sample_interval_s,
            progress_queue_size=settings.progress_queue_size,
            progress_close_timeout_s=settings.progress_close_timeout_s,
            download_timeout_s=settings.download_timeout_s,
            download_max_redirects=settings.download_max_redirects,
            user_agent=f"{settings.app_name}/{settings.app_version}",
        )
