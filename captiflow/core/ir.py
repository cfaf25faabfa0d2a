"""Intermediate representation dataclasses for transcripts and captions.

WHY: The transcription service returns one of three shapes: per-word
timestamps, coarse segments, or untimed text. Probing dict fields at
every call site makes it easy to forget a shape. Each shape gets its own
dataclass so the Segmenter dispatches exactly once and every algorithm is
independently testable. Caption units are the stable contract between
segmentation, playback, and output formatting.

HOW: Six dataclasses:
  TimedText         — one word or segment with start/end seconds
  WordTranscript    — word-level variant
  SegmentTranscript — segment-level variant
  UntimedTranscript — plain text plus the known video duration
  CaptionUnit       — one timed, displayable caption
  CaptionTrack      — ordered captions plus source metadata (formatter input)

RULES:
- All times are in float seconds on the source video's timeline
- CaptionUnit.id is a 1-based ordinal; list order is temporal order
- Caption ranges are half-open: start_s <= t < end_s
- highlighted_word is matched case-insensitively against whole words
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class TimedText:
    """A word or a segment of speech with its time range.

    RULES:
    - text may carry surrounding whitespace from the service; the
      Segmenter strips it
    - start_s / end_s are seconds, possibly unclamped raw service values
    """

    text: str
    start_s: float
    end_s: float


@dataclass
class WordTranscript:
    """Transcript with per-word timestamps."""

    words: List[TimedText] = field(default_factory=list)


@dataclass
class SegmentTranscript:
    """Transcript with sentence/phrase segments but no per-word timing."""

    segments: List[TimedText] = field(default_factory=list)


@dataclass
class UntimedTranscript:
    """Transcript text with no internal timing.

    WHY: Some services (or a degraded retry path) only return the full
    text. The video duration is the only timing information available.

    RULES:
    - video_duration is None or non-positive when unknown; the Segmenter
      then falls back to a fixed per-caption duration
    """

    full_text: str
    video_duration: Optional[float] = None


TranscriptionResult = Union[WordTranscript, SegmentTranscript, UntimedTranscript]


@dataclass
class CaptionUnit:
    """A single timed caption shown as one overlay.

    WHY: The preview player, the subtitle writer, and the JSON export all
    need the same caption granularity: a few words visible together for
    a half-open time range.

    HOW: Produced by the Segmenter from a TranscriptionResult, or parsed
    back from an SRT file.

    RULES:
    - id: 1-based ordinal within its sequence
    - text: non-empty, words separated by single spaces
    - start_s < end_s, both non-negative
    - highlighted_word: optional single word of text to emphasize
    """

    id: int
    text: str
    start_s: float
    end_s: float
    highlighted_word: Optional[str] = None

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s

    def contains(self, t: float) -> bool:
        """True if playback time t falls inside [start_s, end_s)."""
        return self.start_s <= t < self.end_s


@dataclass
class CaptionTrack:
    """The complete caption sequence for one video.

    WHY: Formatters need the captions plus the source identity (for
    output naming), the chosen template, and the total duration.

    RULES:
    - captions: sorted by start_s, non-overlapping
    - source_filename: original upload filename
    - duration_s: video duration if known, else end of the last caption
    - template: caption style id chosen by the user
    """

    captions: List[CaptionUnit]
    source_filename: str
    duration_s: float
    template: str = "minimal"
    language: str = ""
