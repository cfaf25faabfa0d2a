"""Async HTTP client for a Whisper-compatible transcription API.

WHY: The pipeline sends the uploaded video to a speech-to-text service
and needs word-level timestamps back. This module hides the HTTP details
(auth, multipart upload, error wrapping) behind a single client class so
callers (CLI, server, tests) only see typed responses and exceptions.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. TranscriptionClient
is an async context manager. Enter it to get an authenticated client,
exit to close the connection pool. transcribe() performs one request;
transcribe_with_retry() repeats transient failures with exponential
backoff from captiflow.core.errors.

RULES:
- Always use the async context manager (async with TranscriptionClient() as client:)
- Requests verbose_json with word AND segment granularity so the
  Segmenter can fall back when words are missing
- HTTP 429 and 5xx responses are retryable; other errors are not
- api_key defaults to load_api_key() from .env
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

import httpx

from captiflow.api.models import WhisperResponse
from captiflow.config import (
    TRANSCRIPTION_BASE_URL,
    TRANSCRIPTION_MAX_ATTEMPTS,
    TRANSCRIPTION_MODEL,
    load_api_key,
)
from captiflow.core.errors import get_retry_delay, is_retryable

logger = logging.getLogger(__name__)


class TranscriptionAPIError(Exception):
    """Raised when the transcription API returns an error response.

    WHY: Callers need a typed exception to distinguish service errors
    from network errors, and the retry loop needs to know which status
    codes are transient.

    RULES:
    - Always include status_code and message
    - retryable is True for 429 and 5xx
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Transcription API error {status_code}: {message}")

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class TranscriptionClient:
    """Async client for the ``/audio/transcriptions`` endpoint.

    RULES:
    - Use as: async with TranscriptionClient() as client: ...
    - base_url defaults to TRANSCRIPTION_BASE_URL from config
    - model defaults to TRANSCRIPTION_MODEL from config
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or TRANSCRIPTION_BASE_URL).rstrip("/")
        self._model = model or TRANSCRIPTION_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TranscriptionClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "TranscriptionClient must be used as an async context manager: "
                "async with TranscriptionClient() as client: ..."
            )
        return self._client

    async def transcribe(
        self,
        file_path: Path,
        language: str | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> WhisperResponse:
        """Upload a media file and return the parsed transcription.

        Args:
            file_path: Path to the video or audio file.
            language: Optional ISO 639-1 hint, e.g. "en".
            on_status: Optional callback for status updates.

        Raises:
            TranscriptionAPIError: On non-2xx responses.
        """
        client = self._ensure_client()
        if on_status:
            on_status("Transcribing audio...")

        data = {
            "model": self._model,
            "response_format": "verbose_json",
            "timestamp_granularities[]": ["word", "segment"],
        }
        if language:
            data["language"] = language

        file_path = Path(file_path)
        with open(file_path, "rb") as f:
            resp = await client.post(
                "/audio/transcriptions",
                data=data,
                files={"file": (file_path.name, f)},
            )

        if resp.status_code != 200:
            raise TranscriptionAPIError(resp.status_code, resp.text)

        result = WhisperResponse.from_dict(resp.json())
        logger.info(
            "Transcribed %s: %d words, %d segments",
            file_path.name, len(result.words), len(result.segments),
        )
        return result

    async def transcribe_with_retry(
        self,
        file_path: Path,
        language: str | None = None,
        max_attempts: int = TRANSCRIPTION_MAX_ATTEMPTS,
        on_status: Callable[[str], None] | None = None,
    ) -> WhisperResponse:
        """transcribe(), repeating retryable failures with backoff.

        RULES:
        - At most max_attempts calls in total
        - Non-retryable errors propagate immediately
        - The last error propagates when attempts run out
        """
        attempt = 0
        while True:
            try:
                return await self.transcribe(file_path, language=language, on_status=on_status)
            except (TranscriptionAPIError, httpx.TransportError) as exc:
                attempt += 1
                if attempt >= max_attempts or not _should_retry(exc):
                    raise
                delay = get_retry_delay(attempt - 1)
                logger.warning(
                    "Transcription attempt %d/%d failed (%s); retrying in %.0fs",
                    attempt, max_attempts, exc, delay,
                )
                if on_status:
                    on_status("Retrying transcription in {:.0f}s...".format(delay))
                await asyncio.sleep(delay)


def _should_retry(exc: Exception) -> bool:
    # Transport errors (connect, read timeout) are always transient.
    if isinstance(exc, httpx.TransportError):
        return True
    return is_retryable(exc)
