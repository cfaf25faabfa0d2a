"""Transcription API package: async HTTP interface to the speech-to-text service.

WHY: The pipeline needs word-level timestamps for an uploaded video.
This package encapsulates all transcription API communication behind
an async client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. TranscriptionClient
provides the request and retry logic. Response data is parsed into typed
dataclasses defined in models.py.

RULES:
- All HTTP calls go through TranscriptionClient (no direct httpx usage elsewhere)
- Authentication is via Bearer token from config
"""

from captiflow.api.client import TranscriptionAPIError, TranscriptionClient
from captiflow.api.models import WhisperResponse, WhisperSegment, WhisperWord

__all__ = [
    "TranscriptionAPIError",
    "TranscriptionClient",
    "WhisperResponse",
    "WhisperSegment",
    "WhisperWord",
]
