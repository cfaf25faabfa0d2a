"""Transcription API response dataclasses.

WHY: The Whisper-compatible ``verbose_json`` response carries words,
segments, or just text depending on the requested granularity and the
provider. Typed dataclasses make the shape explicit and give a single
place to decide which transcript variant the Segmenter receives.

HOW: from_dict() factories parse the raw JSON. WhisperResponse picks the
richest available variant in to_transcription_result(): words, then
segments, then the untimed text with the reported duration.

RULES:
- All times are float seconds, as returned by the API
- words/segments are empty lists when the response omits them
- Words and segments with blank text are dropped during conversion
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from captiflow.core.ir import (
    SegmentTranscript,
    TimedText,
    TranscriptionResult,
    UntimedTranscript,
    WordTranscript,
)


@dataclass
class WhisperWord:
    """One word with its time range."""

    word: str
    start: float
    end: float

    @classmethod
    def from_dict(cls, data: dict) -> WhisperWord:
        return cls(
            word=data["word"],
            start=float(data["start"]),
            end=float(data["end"]),
        )


@dataclass
class WhisperSegment:
    """A phrase-level segment. Only the fields the pipeline uses are kept."""

    id: int
    text: str
    start: float
    end: float

    @classmethod
    def from_dict(cls, data: dict) -> WhisperSegment:
        return cls(
            id=int(data.get("id", 0)),
            text=data["text"],
            start=float(data["start"]),
            end=float(data["end"]),
        )


@dataclass
class WhisperResponse:
    """Full ``verbose_json`` transcription response.

    RULES:
    - text: the complete transcript, always present
    - duration: audio duration in seconds, None when not reported
    - language: detected language name, "" when not reported
    """

    text: str
    duration: Optional[float] = None
    language: str = ""
    words: List[WhisperWord] = field(default_factory=list)
    segments: List[WhisperSegment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> WhisperResponse:
        duration = data.get("duration")
        return cls(
            text=data.get("text") or "",
            duration=float(duration) if duration is not None else None,
            language=data.get("language") or "",
            words=[WhisperWord.from_dict(w) for w in data.get("words") or []],
            segments=[WhisperSegment.from_dict(s) for s in data.get("segments") or []],
        )

    def to_transcription_result(
        self, video_duration: Optional[float] = None,
    ) -> TranscriptionResult:
        """Convert to the richest transcript variant the response supports.

        Args:
            video_duration: Known video duration; overrides the API's
                            reported duration for the untimed fallback.

        A silent video comes back with blank text and no words or
        segments; that is an empty untimed transcript, not an error.
        """
        words = [
            TimedText(text=w.word.strip(), start_s=w.start, end_s=w.end)
            for w in self.words if w.word.strip()
        ]
        if words:
            return WordTranscript(words=words)

        segments = [
            TimedText(text=s.text.strip(), start_s=s.start, end_s=s.end)
            for s in self.segments if s.text.strip()
        ]
        if segments:
            return SegmentTranscript(segments=segments)

        duration = video_duration if video_duration is not None else self.duration
        return UntimedTranscript(full_text=self.text.strip(), video_duration=duration)
