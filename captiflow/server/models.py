"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation.

HOW: Each endpoint pair (request + response) has its own model. Enums
represent closed sets like output format names. All models include
Field descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Enum values match internal constants exactly (format keys)
- Caption timing fields are named start_time/end_time on the wire,
  start_s/end_s internally
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from captiflow.core.ir import CaptionUnit


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OutputFormat(str, Enum):
    """Available output format identifiers.

    RULES:
    - Values match keys in captiflow.formatters.FORMATTERS exactly
    """

    srt_captions = "srt_captions"
    captions_json = "captions_json"
    plain_text = "plain_text"


# ---------------------------------------------------------------------------
# Shared models
# ---------------------------------------------------------------------------


class CaptionModel(BaseModel):
    """One caption on the wire."""

    id: int = Field(description="1-based caption ordinal.")
    text: str = Field(description="Words shown together on screen.")
    start_time: float = Field(description="Start time in seconds (inclusive).")
    end_time: float = Field(description="End time in seconds (exclusive).")
    highlighted_word: Optional[str] = Field(
        default=None,
        description="Word to emphasize, matched case-insensitively.",
    )

    @classmethod
    def from_unit(cls, caption: CaptionUnit) -> CaptionModel:
        return cls(
            id=caption.id,
            text=caption.text,
            start_time=caption.start_s,
            end_time=caption.end_s,
            highlighted_word=caption.highlighted_word,
        )

    def to_unit(self) -> CaptionUnit:
        return CaptionUnit(
            id=self.id,
            text=self.text,
            start_s=self.start_time,
            end_s=self.end_time,
            highlighted_word=self.highlighted_word,
        )


class ProcessingErrorModel(BaseModel):
    """Stage-scoped failure report.

    WHY: Clients show the user what failed, whether a retry makes sense,
    and what to try next.
    """

    success: bool = Field(default=False, description="Always false.")
    error: str = Field(description="Human-readable error message.")
    stage: str = Field(description="Pipeline stage that failed.")
    can_retry: bool = Field(description="Whether retrying the stage may succeed.")
    suggestions: List[str] = Field(default_factory=list, description="Actionable hints.")
    error_code: str = Field(description="Stable error identifier.")
    technical_error: Optional[str] = Field(
        default=None,
        description="Raw exception text, when it differs from error.",
    )


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SegmentRequest(BaseModel):
    """A raw transcript to segment into captions."""

    transcript: Union[Dict[str, Any], List[Dict[str, Any]]] = Field(
        description=(
            "Transcript object with 'words', 'segments', or 'text'/'fullText', "
            "or a bare list of timed words."
        ),
    )
    video_duration: Optional[float] = Field(
        default=None,
        description="Video duration in seconds, used when the transcript has no timing.",
    )
    min_words: Optional[int] = Field(default=None, description="Minimum words per caption.")
    max_words: Optional[int] = Field(default=None, description="Maximum words per caption.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "transcript": {
                    "words": [
                        {"word": "Hello", "start": 0.0, "end": 0.4},
                        {"word": "world", "start": 0.5, "end": 0.9},
                    ]
                },
                "video_duration": 12.5,
            }
        ]
    }}


class GenerateRequest(BaseModel):
    """Final download request: media, captions, and chosen template."""

    video_data: str = Field(description="Base64-encoded video file.")
    filename: str = Field(default="video.mp4", description="Original video filename.")
    captions: List[CaptionModel] = Field(description="Captions to deliver.")
    template: str = Field(default="minimal", description="Caption template id.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class JobCreatedResponse(BaseModel):
    """Response returned when a new caption job is submitted."""

    id: str = Field(description="Unique job identifier for polling status.")
    status: str = Field(description="Initial job status (always 'pending').")
    filename: str = Field(description="Original uploaded filename.")


class JobResponse(BaseModel):
    """Caption job status response.

    RULES:
    - failure is only set when status is 'failed'
    - output_files is only populated when status is 'completed'
    """

    id: str = Field(description="Unique job identifier.")
    status: str = Field(description="Current job status.")
    filename: str = Field(description="Original uploaded filename.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    config: Dict[str, Any] = Field(description="Configuration used for this job.")
    attempts: int = Field(default=0, description="Transcription attempts made.")
    caption_count: int = Field(default=0, description="Number of captions produced.")
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )
    failure: Optional[ProcessingErrorModel] = Field(
        default=None,
        description="Stage-scoped failure report, only present when status is 'failed'.",
    )
    output_files: Optional[List[str]] = Field(
        default=None,
        description="Output filenames, only present when status is 'completed'.",
    )


class CaptionListResponse(BaseModel):
    """The caption sequence of a completed job."""

    job_id: str = Field(description="The job these captions belong to.")
    template: str = Field(description="Caption template id.")
    duration_s: float = Field(description="Video duration, or the last caption's end.")
    captions: List[CaptionModel] = Field(description="Captions in temporal order.")


class SegmentResponse(BaseModel):
    """Captions produced from a raw transcript."""

    variant: str = Field(description="Transcript variant used: words, segments, or untimed.")
    captions: List[CaptionModel] = Field(description="Captions in temporal order.")


class OverlayTokenModel(BaseModel):
    text: str = Field(description="Token text.")
    emphasized: bool = Field(description="Whether the token is highlighted.")


class OverlayModel(BaseModel):
    """A rendered caption overlay."""

    caption_id: int = Field(description="Id of the rendered caption.")
    text: str = Field(description="Caption text.")
    css_class: str = Field(description="Template CSS class.")
    position_pct: float = Field(description="Bottom offset as a percentage of frame height.")
    font_size: int = Field(description="Font size in CSS pixels.")
    tokens: List[OverlayTokenModel] = Field(description="Text tokens with emphasis flags.")
    html: str = Field(description="Escaped, positioned HTML markup.")


class OverlayResponse(BaseModel):
    """What the preview shows at one playback time."""

    job_id: str = Field(description="The job being previewed.")
    time: float = Field(description="Playback time in seconds, clamped to the video.")
    clock: str = Field(description="Playback time formatted as m:ss.")
    overlay: Optional[OverlayModel] = Field(
        default=None,
        description="Rendered caption, or null when no caption is active.",
    )


class GenerateResponse(BaseModel):
    """Delivered captions and the unmodified media."""

    success: bool = Field(default=True, description="Always true on success.")
    video_data: str = Field(description="Base64-encoded video, returned unmodified.")
    captions_srt: str = Field(description="Captions as SRT content.")
    template: str = Field(description="Caption template id applied.")
    caption_count: int = Field(description="Number of captions delivered.")


class TemplateInfo(BaseModel):
    """Description of a caption template."""

    id: str = Field(description="Template identifier.")
    name: str = Field(description="Display name.")
    description: str = Field(description="Short description of the look.")
    css_class: str = Field(description="CSS class applied to the overlay.")
    supports_emphasis: bool = Field(description="Whether a highlighted word is emphasized.")


class FileInfo(BaseModel):
    """Metadata for a single output file."""

    filename: str = Field(description="Output filename.")
    media_type: str = Field(description="MIME type of the file content.")
    size: int = Field(description="File size in bytes.")


class FileListResponse(BaseModel):
    """List of output files for a completed job."""

    job_id: str = Field(description="The job ID these files belong to.")
    files: List[FileInfo] = Field(description="Available output files.")


class FormatInfo(BaseModel):
    """Description of an available output format."""

    key: str = Field(description="Format identifier used in API requests.")
    name: str = Field(description="Human-readable format name.")
    suffix: str = Field(description="File suffix produced (e.g. '-captions.srt').")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
