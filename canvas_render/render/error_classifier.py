"""Map FFmpeg stderr to a small diagnosis taxonomy."""

import re
from typing import Iterable, Union

from canvas_render.constants.error_codes import (
    DIAGNOSIS_EBADINPUT,
    DIAGNOSIS_EDECODER,
    DIAGNOSIS_ENOENT,
    DIAGNOSIS_ENOMEM,
    DIAGNOSIS_ETIME,
)
from canvas_render.exceptions import ErrorDiagnosis

DEFAULT_WINDOW = 200

# First match wins
STDERR_PATTERNS: list[tuple[re.Pattern, str, str]] = [
    (
        re.compile(r"No such file or directory", re.IGNORECASE),
        DIAGNOSIS_ENOENT,
        "Input file missing or unreadable",
    ),
    (
        re.compile(r"Invalid data found when processing input", re.IGNORECASE),
        DIAGNOSIS_EBADINPUT,
        "Invalid input stream or corrupt file",
    ),
    (
        re.compile(r"(Decoder|Encoder) \(.*\) not found|Unknown (decoder|encoder)", re.IGNORECASE),
        DIAGNOSIS_EDECODER,
        "Required codec not found in ffmpeg build",
    ),
    (
        re.compile(r"Time limit exceeded|SIGKILL", re.IGNORECASE),
        DIAGNOSIS_ETIME,
        "Processing interrupted or exceeded time limit",
    ),
    (
        re.compile(r"Cannot allocate memory", re.IGNORECASE),
        DIAGNOSIS_ENOMEM,
        "Insufficient memory during processing",
    ),
]

REASONS = {code: reason for _, code, reason in STDERR_PATTERNS}


def tail(lines: Iterable[str], window: int = DEFAULT_WINDOW) -> str:
    """Join the last ``window`` lines."""
    buffered = list(lines)
    return "\n".join(buffered[-window:]) if window > 0 else ""


def classify_stderr(
    stderr: Union[str, Iterable[str], None],
    window: int = DEFAULT_WINDOW,
) -> ErrorDiagnosis:
    """Classify captured FFmpeg output.

    Args:
        stderr: Raw text or captured lines
        window: Number of most recent lines to keep and inspect

    Returns:
        ErrorDiagnosis; ``code`` is None when nothing matched. Never raises.
    """
    try:
        if stderr is None:
            text = ""
        elif isinstance(stderr, str):
            text = tail(stderr.splitlines(), window)
        else:
            text = tail((str(line) for line in stderr), window)
    except Exception:
        text = ""

    for pattern, code, reason in STDERR_PATTERNS:
        if pattern.search(text):
            return ErrorDiagnosis(stderr=text, code=code, reason=reason)
    return ErrorDiagnosis(stderr=text)


def diagnosis_for(code: str, stderr: str = "") -> ErrorDiagnosis:
    """Diagnosis for a known code without pattern matching."""
    return ErrorDiagnosis(stderr=stderr, code=code, reason=REASONS.get(code))
