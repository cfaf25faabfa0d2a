"""Configuration constants, segmentation defaults, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Caption chunk sizes, upload limits, and API
defaults are plain data, not buried in logic, so the segmenter, the
server, and the CLI all agree on the same numbers.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values read from the environment with defaults. The
load_api_key() function provides a clear error when the key is missing.

RULES:
- Word-level captions hold MIN_WORDS_PER_CAPTION..MAX_WORDS_PER_CAPTION words
- Segments longer than SEGMENT_SPLIT_THRESHOLD words are subdivided
- API key is loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


# ---------------------------------------------------------------------------
# Segmentation defaults
# ---------------------------------------------------------------------------

MIN_WORDS_PER_CAPTION = _env_int("CAPTIFLOW_MIN_WORDS", 3)
MAX_WORDS_PER_CAPTION = _env_int("CAPTIFLOW_MAX_WORDS", 5)
SEGMENT_SPLIT_THRESHOLD = _env_int("CAPTIFLOW_SEGMENT_SPLIT_THRESHOLD", 4)
SEGMENT_GROUP_SIZE = _env_int("CAPTIFLOW_SEGMENT_GROUP_SIZE", 4)
UNTIMED_CHUNK_SIZE = _env_int("CAPTIFLOW_UNTIMED_CHUNK_SIZE", 4)

FALLBACK_CAPTION_DURATION_S = _env_float("CAPTIFLOW_FALLBACK_CAPTION_DURATION", 3.0)
"""Per-caption duration when the untimed fallback has no usable video duration."""

MIN_CAPTION_DURATION_S = 0.1
"""Shortest caption range; shorter and zero-length ranges are extended to it."""

# ---------------------------------------------------------------------------
# Upload constraints (vertical short-form video)
# ---------------------------------------------------------------------------

SUPPORTED_VIDEO_FORMATS: set[str] = {
    ".mp4", ".mov", ".webm", ".m4v", ".mkv", ".avi",
}
"""Video file extensions accepted for upload (lowercase, with dot)."""

MAX_UPLOAD_BYTES = _env_int("CAPTIFLOW_MAX_UPLOAD_BYTES", 100 * 1024 * 1024)
MAX_VIDEO_DURATION_S = _env_float("CAPTIFLOW_MAX_VIDEO_DURATION", 60.0)
TARGET_ASPECT_RATIO = 9 / 16
ASPECT_RATIO_TOLERANCE = 0.1

# ---------------------------------------------------------------------------
# Transcription API defaults
# ---------------------------------------------------------------------------

TRANSCRIPTION_BASE_URL = os.getenv("TRANSCRIPTION_BASE_URL", "https://api.openai.com/v1")
TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
TRANSCRIPTION_MAX_ATTEMPTS = _env_int("TRANSCRIPTION_MAX_ATTEMPTS", 3)

DEFAULT_TEMPLATE = os.getenv("CAPTIFLOW_DEFAULT_TEMPLATE", "minimal")


def load_api_key() -> str:
    """Load the transcription API key from the environment.

    WHY: The key is required for every transcription call. Loading it
    from the environment (via .env) keeps it out of source code.

    HOW: Reads OPENAI_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Transcription API key not configured. "
            "Add OPENAI_API_KEY to the .env file in the app folder."
        )
    return key
