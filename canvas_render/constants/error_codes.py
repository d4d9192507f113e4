"""Error codes dictionary for the render engine.

Single source of truth for error codes, their retryability and suggested
fixes. Used by :meth:`CanvasRenderError.to_dict` to build machine-readable
error payloads for the job layer.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors (not retryable, fix input)
    # ==========================================================================
    "UNSUPPORTED_FORMAT": {
        "retryable": False,
        "suggested_fix": "Use one of the supported output formats: mp4, mov, avi",
    },
    "INVALID_CANVAS": {
        "retryable": False,
    },
    # ==========================================================================
    # Media errors
    # ==========================================================================
    "MEDIA_DOWNLOAD_FAILED": {
        "retryable": True,
        "suggested_fix": "Check that the element source URL is reachable",
    },
    "MEDIA_PROBE_FAILED": {
        "retryable": False,
        "suggested_fix": "Check that the element source is a valid image or video file",
    },
    # ==========================================================================
    # Processing errors
    # ==========================================================================
    "PROCESSING_ERROR": {
        "retryable": False,
    },
    "PROCESSING_TIMEOUT": {
        "retryable": True,
        "suggested_fix": "Reduce canvas size or element count, or raise the timeout",
    },
    "PROCESSING_CANCELLED": {
        "retryable": False,
    },
    # ==========================================================================
    # CLI errors
    # ==========================================================================
    "OUTPUT_WRITE_FAILED": {
        "retryable": False,
        "suggested_fix": "Check that the --output directory exists and is writable",
    },
}

# FFmpeg diagnosis codes produced by the error classifier
DIAGNOSIS_ENOENT = "ENOENT"
DIAGNOSIS_EBADINPUT = "EBADINPUT"
DIAGNOSIS_EDECODER = "EDECODER"
DIAGNOSIS_ETIME = "ETIME"
DIAGNOSIS_ENOMEM = "ENOMEM"


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested fix
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
