"""Error types, stage-scoped error classification, and retry policy.

WHY: The caption pipeline fails in different ways at different stages:
a bad upload, an unreachable transcription service, a malformed
transcript. Users need a message and concrete suggestions for the stage
that failed, and the retry loop needs to know which failures are worth
repeating and how long to wait.

HOW: Typed exceptions are raised where failures happen. classify_error()
maps any exception plus the stage name to a ProcessingError record.
is_retryable() and get_retry_delay() give the retry loop a single policy.

RULES:
- Stages: upload_validation, transcription, caption_processing,
  video_generation (anything else is reported generically)
- InvalidTranscriptError and InvalidCaptionError are never retryable
- Retry delay: 2**attempt seconds, capped at 30 seconds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

STAGE_UPLOAD_VALIDATION = "upload_validation"
STAGE_TRANSCRIPTION = "transcription"
STAGE_CAPTION_PROCESSING = "caption_processing"
STAGE_VIDEO_GENERATION = "video_generation"

_MAX_RETRY_DELAY_S = 30.0

_RETRYABLE_PATTERNS = (
    "timeout",
    "timed out",
    "rate limit",
    "network",
    "temporary",
    "busy",
    "unavailable",
)


class InvalidTranscriptError(ValueError):
    """Raised when a transcript has none of words, segments, or text.

    WHY: A transcript without any recognizable shape is a caller error.
    The caller decides whether to fall back to another variant or abort.

    RULES:
    - Never retried internally
    """


class InvalidCaptionError(ValueError):
    """Raised when a caption sequence breaks the data-model invariants.

    RULES:
    - Message names the 1-based caption position
    """


class DegenerateTimingWarning(UserWarning):
    """Emitted when a caption range collapses to zero length.

    WHY: Interpolation or clamping can produce start == end. The
    Segmenter extends the range by a small epsilon and carries on; the
    warning only makes the repair observable.
    """


class UploadValidationError(ValueError):
    """Raised when an upload violates size, format, duration, or shape limits."""


@dataclass
class ProcessingError:
    """A user-facing description of a failed pipeline stage.

    RULES:
    - error: human-readable message
    - stage: one of the STAGE_* constants (or a caller-defined name)
    - can_retry: whether retrying the same stage may succeed
    - suggestions: short actionable hints for the user
    - error_code: stable identifier for clients
    - technical_error: raw exception text when it differs from error
    """

    error: str
    stage: str
    can_retry: bool
    suggestions: List[str] = field(default_factory=list)
    error_code: str = "GENERIC_ERROR"
    technical_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.error,
            "stage": self.stage,
            "can_retry": self.can_retry,
            "suggestions": list(self.suggestions),
            "error_code": self.error_code,
            "technical_error": self.technical_error,
        }


def is_retryable(exc: BaseException) -> bool:
    """Return True if a failed call is worth repeating.

    HOW: Exceptions may declare a ``retryable`` attribute (the API
    client's errors do). Otherwise the message is matched against
    transient-failure patterns.
    """
    if isinstance(exc, (InvalidTranscriptError, InvalidCaptionError, UploadValidationError)):
        return False
    flag = getattr(exc, "retryable", None)
    if flag is not None:
        return bool(flag)
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(pattern in message for pattern in _RETRYABLE_PATTERNS)


def get_retry_delay(attempt: int) -> float:
    """Exponential backoff delay in seconds for the given 0-based attempt."""
    return min(float(2 ** max(attempt, 0)), _MAX_RETRY_DELAY_S)


def classify_error(stage: str, exc: BaseException) -> ProcessingError:
    """Map an exception raised during ``stage`` to a ProcessingError.

    WHY: The wizard, the CLI, and the server all report failures the
    same way: one message, a retry flag, and suggestions scoped to the
    stage that failed.
    """
    message = str(exc) or exc.__class__.__name__
    if stage == STAGE_UPLOAD_VALIDATION:
        return _upload_error(message)
    if stage == STAGE_TRANSCRIPTION:
        return _transcription_error(exc, message)
    if stage == STAGE_CAPTION_PROCESSING:
        return ProcessingError(
            error="Failed to process captions from transcription",
            stage=stage,
            can_retry=not isinstance(exc, InvalidTranscriptError),
            suggestions=[
                "Try uploading the video again",
                "Ensure your video has clear speech",
            ],
            error_code="CAPTION_PROCESSING_ERROR",
            technical_error=message,
        )
    if stage == STAGE_VIDEO_GENERATION:
        return _generation_error(exc, message)
    return ProcessingError(
        error=message,
        stage=stage,
        can_retry=True,
        suggestions=[
            "Try the operation again",
            "Check your internet connection",
        ],
        error_code="GENERIC_ERROR",
        technical_error=repr(exc),
    )


def _upload_error(message: str) -> ProcessingError:
    lowered = message.lower()
    if "aspect ratio" in lowered:
        suggestions = [
            "Use a vertical video with 9:16 aspect ratio",
            "Record or edit your video to be taller than it is wide",
        ]
    elif "duration" in lowered:
        suggestions = [
            "Trim your video to be under 60 seconds",
            "Split longer videos into shorter segments",
        ]
    elif "file size" in lowered:
        suggestions = [
            "Compress your video file",
            "Try a lower resolution or bitrate",
        ]
    else:
        suggestions = [
            "Ensure your video is under 60 seconds",
            "Use vertical format (9:16 aspect ratio)",
            "Try converting to MP4 format",
        ]
    return ProcessingError(
        error=message,
        stage=STAGE_UPLOAD_VALIDATION,
        can_retry=True,
        suggestions=suggestions,
        error_code="UPLOAD_VALIDATION_ERROR",
    )


def _transcription_error(exc: BaseException, message: str) -> ProcessingError:
    status_code = getattr(exc, "status_code", None)
    lowered = message.lower()

    if status_code == 401 or "api key" in lowered:
        return ProcessingError(
            error="Service configuration error. Please contact support.",
            stage=STAGE_TRANSCRIPTION,
            can_retry=False,
            suggestions=["This is a configuration issue. Please contact support."],
            error_code="API_KEY_ERROR",
            technical_error=message,
        )

    if status_code == 429 or "rate limit" in lowered:
        return ProcessingError(
            error=message,
            stage=STAGE_TRANSCRIPTION,
            can_retry=True,
            suggestions=[
                "Wait a few minutes before trying again",
                "The service is temporarily busy",
            ],
            error_code="RATE_LIMIT_ERROR",
        )

    if "no speech" in lowered:
        suggestions = [
            "Speak more clearly and loudly",
            "Reduce background noise",
        ]
    elif "timeout" in lowered or "timed out" in lowered:
        suggestions = [
            "Try with a shorter video",
            "Check your internet connection",
        ]
    else:
        suggestions = [
            "Ensure clear speech in your video",
            "Try again in a few minutes",
        ]
    return ProcessingError(
        error=message,
        stage=STAGE_TRANSCRIPTION,
        can_retry=is_retryable(exc),
        suggestions=suggestions,
        error_code="TRANSCRIPTION_ERROR",
    )


def _generation_error(exc: BaseException, message: str) -> ProcessingError:
    lowered = message.lower()
    if isinstance(exc, InvalidCaptionError):
        suggestions = ["Regenerate the captions and try again"]
    elif "timeout" in lowered:
        suggestions = [
            "Try with a shorter video",
            "Check your internet connection",
        ]
    else:
        suggestions = [
            "Try again with the same video",
            "Ensure stable internet connection",
        ]
    return ProcessingError(
        error=message,
        stage=STAGE_VIDEO_GENERATION,
        can_retry=not isinstance(exc, InvalidCaptionError),
        suggestions=suggestions,
        error_code="VIDEO_GENERATION_ERROR",
    )
