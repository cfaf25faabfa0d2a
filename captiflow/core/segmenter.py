"""Transcript segmentation: transcription results to caption units.

WHY: A transcription arrives as per-word timestamps, coarse segments, or
bare text. Captions on a short vertical video must be a few words long,
time-bounded, sorted, and never overlapping. This module is the single
place that turns every transcript shape, including the degraded
untimed one, into a valid caption sequence.

HOW: segment_transcript() dispatches once on the transcript variant:
  - word-level:    group consecutive words into min..max word chunks
  - segment-level: split long segments into fixed word groups and
                   interpolate their times inside the segment
  - untimed:       chunk the text and spread it over the video duration
Every unit passes through _append_unit(), which clamps negative times,
removes overlap with the previous unit, and stretches short ranges.

RULES:
- Pure and deterministic: the same input always gives the same output
- Empty or whitespace-only transcripts yield an empty list
- Word-level: full max-size chunks; a trailing remainder shorter than
  min_words is rebalanced with the chunk before it
- Segment-level timing assumes a uniform speaking rate inside a segment.
  Per-word timing is unknown, so this is an approximation.
- Fixed-size grouping merges a lone trailing word into the previous group
- Ranges shorter than min_duration are extended to it with a
  DegenerateTimingWarning (never an exception)
- Malformed input raises InvalidTranscriptError
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from captiflow.config import (
    FALLBACK_CAPTION_DURATION_S,
    MAX_WORDS_PER_CAPTION,
    MIN_CAPTION_DURATION_S,
    MIN_WORDS_PER_CAPTION,
    SEGMENT_GROUP_SIZE,
    SEGMENT_SPLIT_THRESHOLD,
    UNTIMED_CHUNK_SIZE,
)
from captiflow.core.errors import (
    DegenerateTimingWarning,
    InvalidCaptionError,
    InvalidTranscriptError,
)
from captiflow.core.ir import (
    CaptionUnit,
    SegmentTranscript,
    TimedText,
    TranscriptionResult,
    UntimedTranscript,
    WordTranscript,
)


@dataclass(frozen=True)
class SegmenterOptions:
    """Tunable thresholds for caption segmentation.

    RULES:
    - 1 <= min_words <= max_words
    - group sizes are >= 1, durations are > 0
    - when min_words > (max_words + 1) // 2 a rebalanced pair cannot
      satisfy both bounds; max_words wins
    """

    min_words: int = MIN_WORDS_PER_CAPTION
    max_words: int = MAX_WORDS_PER_CAPTION
    segment_split_threshold: int = SEGMENT_SPLIT_THRESHOLD
    segment_group_size: int = SEGMENT_GROUP_SIZE
    untimed_chunk_size: int = UNTIMED_CHUNK_SIZE
    fallback_caption_duration: float = FALLBACK_CAPTION_DURATION_S
    min_duration: float = MIN_CAPTION_DURATION_S

    def __post_init__(self) -> None:
        if self.min_words < 1 or self.max_words < self.min_words:
            raise ValueError(
                "Invalid caption size bounds: min_words={}, max_words={}".format(
                    self.min_words, self.max_words
                )
            )
        if self.segment_group_size < 1 or self.untimed_chunk_size < 1:
            raise ValueError("Group sizes must be at least 1")
        if self.segment_split_threshold < 1:
            raise ValueError("segment_split_threshold must be at least 1")
        if self.fallback_caption_duration <= 0 or self.min_duration <= 0:
            raise ValueError("Durations must be positive")


DEFAULT_OPTIONS = SegmenterOptions()


def segment_transcript(
    result: TranscriptionResult,
    options: Optional[SegmenterOptions] = None,
) -> List[CaptionUnit]:
    """Convert any transcript variant into an ordered caption sequence.

    Args:
        result: A WordTranscript, SegmentTranscript, or UntimedTranscript.
        options: Segmentation thresholds; defaults come from config.

    Returns:
        Caption units sorted by start time, ids numbered from 1.

    Raises:
        InvalidTranscriptError: If result is not a known variant.
    """
    opts = options or DEFAULT_OPTIONS
    if isinstance(result, WordTranscript):
        return _segment_words(result.words, opts)
    if isinstance(result, SegmentTranscript):
        return _segment_segments(result.segments, opts)
    if isinstance(result, UntimedTranscript):
        return _segment_untimed(result.full_text, result.video_duration, opts)
    raise InvalidTranscriptError(
        "Unsupported transcript type: {}".format(type(result).__name__)
    )


# ---------------------------------------------------------------------------
# Variant algorithms
# ---------------------------------------------------------------------------


def _segment_words(words: List[TimedText], opts: SegmenterOptions) -> List[CaptionUnit]:
    cleaned = [
        TimedText(text=w.text.strip(), start_s=w.start_s, end_s=w.end_s)
        for w in words
        if w.text and w.text.strip()
    ]
    units: List[CaptionUnit] = []
    index = 0
    for size in _word_chunk_sizes(len(cleaned), opts.min_words, opts.max_words):
        chunk = cleaned[index:index + size]
        index += size
        _append_unit(
            units,
            " ".join(w.text for w in chunk).strip(),
            chunk[0].start_s,
            chunk[-1].end_s,
            opts,
        )
    return units


def _segment_segments(segments: List[TimedText], opts: SegmenterOptions) -> List[CaptionUnit]:
    units: List[CaptionUnit] = []
    for segment in segments:
        words = segment.text.split()
        if not words:
            continue

        seg_start = max(segment.start_s, 0.0)
        seg_end = max(segment.end_s, 0.0)

        if len(words) <= opts.segment_split_threshold:
            _append_unit(units, " ".join(words), seg_start, seg_end, opts)
            continue

        total = len(words)
        duration = max(seg_end - seg_start, 0.0)
        group_start = 0
        for group in _fixed_groups(words, opts.segment_group_size):
            group_end = group_start + len(group)
            sub_start = seg_start + duration * group_start / total
            if group_end == total:
                sub_end = seg_end
            else:
                sub_end = seg_start + duration * group_end / total
            _append_unit(units, " ".join(group), sub_start, sub_end, opts)
            group_start = group_end
    return units


def _segment_untimed(
    full_text: str,
    video_duration: Optional[float],
    opts: SegmenterOptions,
) -> List[CaptionUnit]:
    words = (full_text or "").split()
    if not words:
        return []

    groups = _fixed_groups(words, opts.untimed_chunk_size)
    units: List[CaptionUnit] = []

    if video_duration is None or video_duration <= 0:
        # Degraded mode: fixed duration per caption from zero.
        step = opts.fallback_caption_duration
        for i, group in enumerate(groups):
            _append_unit(units, " ".join(group), i * step, (i + 1) * step, opts)
        return units

    total = len(words)
    consumed = 0
    for i, group in enumerate(groups):
        start = video_duration * consumed / total
        consumed += len(group)
        end = video_duration if i == len(groups) - 1 else video_duration * consumed / total
        _append_unit(units, " ".join(group), start, end, opts)
    return units


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _word_chunk_sizes(count: int, min_words: int, max_words: int) -> List[int]:
    """Chunk sizes for ``count`` words: full chunks, then a rebalanced tail.

    A remainder shorter than min_words is pooled with the last full chunk
    and the pool is split in two, larger half first.
    """
    if count == 0:
        return []
    full, remainder = divmod(count, max_words)
    sizes = [max_words] * full
    if remainder == 0:
        return sizes
    if remainder >= min_words or not sizes:
        sizes.append(remainder)
        return sizes
    pooled = sizes.pop() + remainder
    sizes.append(pooled - pooled // 2)
    sizes.append(pooled // 2)
    return sizes


def _fixed_groups(words: List[str], size: int) -> List[List[str]]:
    groups = [words[i:i + size] for i in range(0, len(words), size)]
    if size > 1 and len(groups) > 1 and len(groups[-1]) == 1:
        groups[-2].extend(groups.pop())
    return groups


def _append_unit(
    units: List[CaptionUnit],
    text: str,
    start_s: float,
    end_s: float,
    opts: SegmenterOptions,
) -> None:
    start_s = max(float(start_s), 0.0)
    end_s = max(float(end_s), 0.0)
    if units and start_s < units[-1].end_s:
        start_s = units[-1].end_s
    # round() absorbs float noise such as 0.3 - 0.2 < 0.1
    if round(end_s - start_s, 6) < opts.min_duration:
        warnings.warn(
            "Caption {!r} lasts {:.4f}s at {:.3f}s; extending to {}s".format(
                text, max(end_s - start_s, 0.0), start_s, opts.min_duration
            ),
            DegenerateTimingWarning,
            stacklevel=3,
        )
        end_s = start_s + opts.min_duration
    units.append(CaptionUnit(
        id=len(units) + 1,
        text=text,
        start_s=start_s,
        end_s=end_s,
    ))


# ---------------------------------------------------------------------------
# Parsing raw transcript payloads
# ---------------------------------------------------------------------------

_TEXT_KEYS = ("text", "word", "t")
_START_KEYS = ("startTime", "start_time", "start_s", "start", "s")
_END_KEYS = ("endTime", "end_time", "end_s", "end", "e")
_FULL_TEXT_KEYS = ("fullText", "full_text", "text")
_DURATION_KEYS = ("videoDuration", "video_duration", "duration")


def _first(item: Dict[str, Any], keys: tuple) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def _parse_timed(items: List[Any], kind: str) -> List[TimedText]:
    parsed = []  # type: List[TimedText]
    for position, item in enumerate(items, 1):
        if not isinstance(item, dict):
            raise InvalidTranscriptError(
                "{} {} is not an object".format(kind, position)
            )
        text = _first(item, _TEXT_KEYS)
        start = _first(item, _START_KEYS)
        end = _first(item, _END_KEYS)
        if not isinstance(text, str) or start is None or end is None:
            raise InvalidTranscriptError(
                "{} {} needs text, start and end".format(kind, position)
            )
        try:
            parsed.append(TimedText(text=text, start_s=float(start), end_s=float(end)))
        except (TypeError, ValueError):
            raise InvalidTranscriptError(
                "{} {} has non-numeric timing".format(kind, position)
            )
    return parsed


def parse_transcription(
    data: Any,
    video_duration: Optional[float] = None,
) -> TranscriptionResult:
    """Parse a transcript payload into its tagged variant.

    WHY: Transcripts reach the Segmenter from JSON files, HTTP bodies, and
    service responses with slightly different field names. Parsing picks
    the variant once so segmentation never probes fields.

    HOW: Accepts a mapping or a bare list of words. Priority: non-empty
    ``words`` → word-level, non-empty ``segments`` → segment-level, a
    text field → untimed, then an explicitly empty ``words``/``segments``
    list → the matching empty variant. Field names are flexible:
    text/word, startTime/start_time/start, endTime/end_time/end.

    Args:
        data: Decoded JSON payload.
        video_duration: Known video duration; overrides any duration
            carried in the payload for the untimed variant.

    Raises:
        InvalidTranscriptError: If no variant can be recognized.
    """
    if isinstance(data, list):
        return WordTranscript(words=_parse_timed(data, "Word"))
    if not isinstance(data, dict):
        raise InvalidTranscriptError("Transcript must be a JSON object or a list of words")

    words = data.get("words")
    segments = data.get("segments")

    if isinstance(words, list) and words:
        return WordTranscript(words=_parse_timed(words, "Word"))
    if isinstance(segments, list) and segments:
        return SegmentTranscript(segments=_parse_timed(segments, "Segment"))

    full_text = _first(data, _FULL_TEXT_KEYS)
    if isinstance(full_text, str):
        duration = video_duration
        if duration is None:
            raw = _first(data, _DURATION_KEYS)
            duration = float(raw) if isinstance(raw, (int, float)) else None
        return UntimedTranscript(full_text=full_text, video_duration=duration)

    if isinstance(words, list):
        return WordTranscript(words=[])
    if isinstance(segments, list):
        return SegmentTranscript(segments=[])

    raise InvalidTranscriptError(
        "Transcript has no words, segments, or text to caption"
    )


# ---------------------------------------------------------------------------
# Caption validation
# ---------------------------------------------------------------------------


def validate_captions(captions: List[CaptionUnit]) -> None:
    """Check a caption sequence against the data-model invariants.

    RULES:
    - every caption has non-empty text
    - 0 <= start < end
    - sorted by start and non-overlapping
    - highlighted_word, when set, is one of the caption's words

    Raises:
        InvalidCaptionError: Naming the first offending 1-based position.
    """
    previous = None  # type: Optional[CaptionUnit]
    for position, caption in enumerate(captions, 1):
        if not caption.text or not caption.text.strip():
            raise InvalidCaptionError(
                "Invalid caption text at position {}".format(position)
            )
        if caption.start_s < 0 or caption.end_s <= caption.start_s:
            raise InvalidCaptionError(
                "Invalid caption duration at position {}: "
                "start time must be before end time".format(position)
            )
        if previous is not None and caption.start_s < previous.end_s:
            raise InvalidCaptionError(
                "Caption at position {} overlaps the previous caption".format(position)
            )
        if caption.highlighted_word:
            target = caption.highlighted_word.lower()
            if target not in (w.lower() for w in caption.text.split()):
                raise InvalidCaptionError(
                    "Highlighted word {!r} not found in caption at position {}".format(
                        caption.highlighted_word, position
                    )
                )
        previous = caption
