"""Tests for the exception hierarchy and error codes."""

from canvas_render.constants.error_codes import ERROR_CODES, get_error_spec, is_retryable
from canvas_render.exceptions import (
    CanvasRenderError,
    ErrorDiagnosis,
    MediaDownloadError,
    MediaProbeError,
    ProcessingCancelledError,
    ProcessingError,
    ProcessingTimeoutError,
    UnsupportedFormatError,
)


class TestErrorCodes:
    """Tests for the error code table."""

    def test_every_exception_code_is_registered(self):
        """Test each exception class has an entry."""
        for cls in (
            CanvasRenderError,
            UnsupportedFormatError,
            ProcessingError,
            MediaDownloadError,
            MediaProbeError,
            ProcessingCancelledError,
            ProcessingTimeoutError,
        ):
            assert cls.code in ERROR_CODES

    def test_retryable(self):
        """Test transient failures are retryable."""
        assert is_retryable("PROCESSING_TIMEOUT")
        assert is_retryable("MEDIA_DOWNLOAD_FAILED")
        assert not is_retryable("UNSUPPORTED_FORMAT")
        assert not is_retryable("NOT_A_CODE")
        assert get_error_spec("NOT_A_CODE") == {"retryable": False}


class TestExceptions:
    """Tests for exception payloads."""

    def test_unsupported_format(self):
        """Test the format is part of the message and details."""
        err = UnsupportedFormatError("wmv")
        assert str(err) == "Unsupported format: wmv"
        assert err.status_code == 415
        data = err.to_dict()
        assert data["code"] == "UNSUPPORTED_FORMAT"
        assert data["details"] == {"format": "wmv"}
        assert data["retryable"] is False
        assert "mp4" in data["suggested_fix"]

    def test_timeout_is_not_processing_error(self):
        """Test timeouts are distinguishable from processing failures."""
        err = ProcessingTimeoutError(5000)
        assert isinstance(err, CanvasRenderError)
        assert not isinstance(err, ProcessingError)
        assert str(err) == "Processing exceeded 5000ms"
        assert err.to_dict()["retryable"] is True

    def test_processing_error_diagnosis(self):
        """Test the diagnosis is serialized."""
        diagnosis = ErrorDiagnosis(stderr="boom", code="ENOMEM", reason="Insufficient memory")
        err = ProcessingError("FFmpeg processing failed", diagnosis=diagnosis)
        assert err.stderr == "boom"
        assert err.to_dict()["diagnosis"] == {
            "code": "ENOMEM",
            "reason": "Insufficient memory",
            "stderr": "boom",
        }

    def test_processing_error_without_diagnosis(self):
        """Test a missing diagnosis serializes as None."""
        err = ProcessingError()
        assert err.message == "Processing failed"
        assert err.stderr == ""
        assert err.to_dict()["diagnosis"] is None

    def test_download_error_carries_url(self):
        """Test download errors name the URL."""
        err = MediaDownloadError("https://cdn.example.com/a.png", cause="HTTP 404")
        assert isinstance(err, ProcessingError)
        assert err.url == "https://cdn.example.com/a.png"
        assert err.details == {"url": "https://cdn.example.com/a.png", "cause": "HTTP 404"}
        assert err.to_dict()["retryable"] is True

    def test_cancelled_is_processing_error(self):
        """Test cancellation is a ProcessingError subtype."""
        err = ProcessingCancelledError("Processing cancelled")
        assert isinstance(err, ProcessingError)
        assert err.code == "PROCESSING_CANCELLED"
