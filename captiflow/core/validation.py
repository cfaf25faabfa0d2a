"""Upload precondition checks for short vertical videos.

WHY: The caption pipeline assumes a short, vertical, non-huge video.
Checking those limits before any API call gives the user an immediate,
specific message instead of a slow remote failure.

HOW: validate_upload() checks whatever the caller knows (the filename
and size always, the duration and frame size when available) and
raises UploadValidationError on the first violation.

RULES:
- Extension must be in SUPPORTED_VIDEO_FORMATS
- Size must not exceed MAX_UPLOAD_BYTES
- Duration must not exceed MAX_VIDEO_DURATION_S (checked when known)
- width/height must be within ASPECT_RATIO_TOLERANCE of 9:16 (when known)
- Messages mention "file size", "duration", or "aspect ratio" so the
  error classifier can pick matching suggestions
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from captiflow.config import (
    ASPECT_RATIO_TOLERANCE,
    MAX_UPLOAD_BYTES,
    MAX_VIDEO_DURATION_S,
    SUPPORTED_VIDEO_FORMATS,
    TARGET_ASPECT_RATIO,
)
from captiflow.core.errors import UploadValidationError


def validate_upload(
    filename: str,
    size_bytes: int,
    duration_s: Optional[float] = None,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> None:
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_VIDEO_FORMATS:
        raise UploadValidationError(
            "Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(SUPPORTED_VIDEO_FORMATS))
            )
        )

    if size_bytes <= 0:
        raise UploadValidationError("Uploaded file is empty")

    if size_bytes > MAX_UPLOAD_BYTES:
        raise UploadValidationError(
            "Video file size ({:.1f} MB) exceeds the {:.0f} MB limit".format(
                size_bytes / (1024 * 1024), MAX_UPLOAD_BYTES / (1024 * 1024)
            )
        )

    if duration_s is not None and duration_s > MAX_VIDEO_DURATION_S:
        raise UploadValidationError(
            "Video duration ({:.1f}s) exceeds the {:.0f}s limit".format(
                duration_s, MAX_VIDEO_DURATION_S
            )
        )

    if width and height:
        ratio = width / height
        if abs(ratio - TARGET_ASPECT_RATIO) > ASPECT_RATIO_TOLERANCE:
            raise UploadValidationError(
                "Invalid aspect ratio {}x{}: use a vertical 9:16 video".format(width, height)
            )
