"""Custom exceptions for the canvas render engine.

Every failure that leaves the engine is one of these, carrying a
machine-readable code and, for FFmpeg failures, a classified diagnosis
of the captured stderr.
"""

from dataclasses import dataclass
from typing import Any

from canvas_render.constants.error_codes import get_error_spec


@dataclass(frozen=True)
class ErrorDiagnosis:
    """Classified FFmpeg diagnostic output.

    ``code`` and ``reason`` are ``None`` when no known pattern matched.
    """

    stderr: str = ""
    code: str | None = None
    reason: str | None = None

    @property
    def classified(self) -> bool:
        return self.code is not None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "reason": self.reason, "stderr": self.stderr}


class CanvasRenderError(Exception):
    """Base exception for all render engine errors."""

    code: str = "PROCESSING_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the job layer."""
        spec = get_error_spec(self.code)
        return {
            "name": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "retryable": spec.get("retryable", False),
            "suggested_fix": spec.get("suggested_fix"),
            "details": self.details,
        }


# =============================================================================
# Request Errors
# =============================================================================


class UnsupportedFormatError(CanvasRenderError):
    """Requested output format is not supported."""

    code = "UNSUPPORTED_FORMAT"
    status_code = 415
    message = "Unsupported format"

    def __init__(self, output_format: str | None = None):
        message = f"Unsupported format: {output_format}" if output_format else self.message
        super().__init__(message, details={"format": output_format} if output_format else None)
        self.output_format = output_format


# =============================================================================
# Processing Errors
# =============================================================================


class ProcessingError(CanvasRenderError):
    """Fetch, probe, graph-build or FFmpeg failure."""

    code = "PROCESSING_ERROR"
    status_code = 422
    message = "Processing failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        diagnosis: ErrorDiagnosis | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code=code, details=details)
        self.diagnosis = diagnosis

    @property
    def stderr(self) -> str:
        return self.diagnosis.stderr if self.diagnosis else ""

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["diagnosis"] = self.diagnosis.to_dict() if self.diagnosis else None
        return data


class MediaDownloadError(ProcessingError):
    """An element source could not be downloaded."""

    code = "MEDIA_DOWNLOAD_FAILED"
    message = "Failed to download media"

    def __init__(self, url: str, cause: str | None = None):
        details = {"url": url}
        if cause:
            details["cause"] = cause
        super().__init__(f"Failed to download media: {url}", details=details)
        self.url = url


class MediaProbeError(ProcessingError):
    """ffprobe could not read a downloaded file."""

    code = "MEDIA_PROBE_FAILED"
    message = "Failed to probe media"

    def __init__(self, path: str, stderr: str = ""):
        super().__init__(
            f"Failed to probe media: {path}",
            diagnosis=ErrorDiagnosis(stderr=stderr) if stderr else None,
            details={"path": path},
        )
        self.path = path


class ProcessingCancelledError(ProcessingError):
    """The run was cancelled and FFmpeg was killed."""

    code = "PROCESSING_CANCELLED"
    message = "Processing cancelled"


class ProcessingTimeoutError(CanvasRenderError):
    """Processing exceeded its deadline.

    Deliberately not a :class:`ProcessingError` so callers can tell a slow
    render from broken input.
    """

    code = "PROCESSING_TIMEOUT"
    status_code = 408
    message = "Operation timed out"

    def __init__(self, timeout_ms: int | None = None):
        message = f"Processing exceeded {timeout_ms}ms" if timeout_ms else self.message
        super().__init__(message, details={"timeout_ms": timeout_ms} if timeout_ms else None)
        self.timeout_ms = timeout_ms
