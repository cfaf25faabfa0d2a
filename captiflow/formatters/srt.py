"""SRT subtitle writer and parser.

WHY: The download step and the video-generation endpoint hand captions
to players and editors as SRT files. Captions edited elsewhere come back
as SRT too, so the conversion must work in both directions without
losing timing or the emphasized word.

HOW: format_srt() writes numbered blocks: index, ``HH:MM:SS,mmm -->
HH:MM:SS,mmm``, text, blank line. The highlighted word is wrapped in a
``<b>`` tag, which SRT players render as bold. parse_srt() reads blocks
back into CaptionUnits, recovering the highlighted word from the tag.

RULES:
- Timestamps are rounded to the nearest millisecond
- SRT indices are 1-based; parsed captions are renumbered in file order
- Only the first matching token is wrapped in <b>…</b>
- Multi-line cue text is joined with single spaces when parsed
- Malformed blocks raise InvalidCaptionError naming the block
"""

from __future__ import annotations

import re
from typing import List, Optional

from captiflow.core.errors import InvalidCaptionError
from captiflow.core.ir import CaptionTrack, CaptionUnit
from captiflow.formatters.base import BaseFormatter, FormatterOutput

_TIMING_RE = re.compile(
    r"^\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})"
)
_BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")
_BOLD_RE = re.compile(r"<b>(.*?)</b>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


def seconds_to_srt_time(seconds: float) -> str:
    """Convert seconds to SRT timestamp format: HH:MM:SS,mmm"""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)


def _srt_time_to_seconds(h: str, m: str, s: str, ms: str) -> float:
    return (int(h) * 3_600_000 + int(m) * 60_000 + int(s) * 1000 + int(ms)) / 1000.0


def _cue_text(caption: CaptionUnit, emphasis: bool) -> str:
    if not emphasis or not caption.highlighted_word:
        return caption.text
    target = caption.highlighted_word.lower()
    tokens = caption.text.split(" ")
    for i, token in enumerate(tokens):
        if token.lower() == target:
            tokens[i] = "<b>{}</b>".format(token)
            break
    return " ".join(tokens)


def format_srt(captions: List[CaptionUnit], emphasis: bool = True) -> str:
    """Render captions as SRT content.

    Args:
        captions: Ordered caption units.
        emphasis: Wrap each caption's highlighted word in <b> tags.

    Returns:
        SRT content, or an empty string when there are no captions.
    """
    blocks = []
    for index, caption in enumerate(captions, 1):
        blocks.append("{}\n{} --> {}\n{}\n".format(
            index,
            seconds_to_srt_time(caption.start_s),
            seconds_to_srt_time(caption.end_s),
            _cue_text(caption, emphasis),
        ))
    return "\n".join(blocks)


def parse_srt(content: str) -> List[CaptionUnit]:
    """Parse SRT content into caption units.

    Raises:
        InvalidCaptionError: If a block has no valid timing line or no text.
    """
    normalized = content.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff").strip()
    if not normalized:
        return []

    captions = []  # type: List[CaptionUnit]
    for position, block in enumerate(_BLOCK_SPLIT_RE.split(normalized), 1):
        lines = [line for line in block.split("\n") if line.strip()]
        if lines and _TIMING_RE.match(lines[0]) is None:
            # Leading index line is optional in the wild.
            lines = lines[1:]
        if not lines:
            raise InvalidCaptionError("SRT block {} is empty".format(position))

        timing = _TIMING_RE.match(lines[0])
        if timing is None:
            raise InvalidCaptionError(
                "SRT block {} has no valid timing line".format(position)
            )
        groups = timing.groups()
        start_s = _srt_time_to_seconds(*groups[:4])
        end_s = _srt_time_to_seconds(*groups[4:])

        raw_text = " ".join(line.strip() for line in lines[1:])
        highlighted = None  # type: Optional[str]
        bold = _BOLD_RE.search(raw_text)
        if bold:
            highlighted = _TAG_RE.sub("", bold.group(1)).strip() or None
        text = " ".join(_TAG_RE.sub("", raw_text).split())
        if not text:
            raise InvalidCaptionError("SRT block {} has no text".format(position))

        captions.append(CaptionUnit(
            id=len(captions) + 1,
            text=text,
            start_s=start_s,
            end_s=end_s,
            highlighted_word=highlighted,
        ))
    return captions


class SRTFormatter(BaseFormatter):
    """Formatter that produces one SRT subtitle file."""

    @property
    def name(self) -> str:
        return "SRT Subtitles"

    def format(self, track: CaptionTrack) -> List[FormatterOutput]:
        return [
            FormatterOutput(
                suffix="-captions.srt",
                content=format_srt(track.captions),
                media_type="application/x-subrip",
            )
        ]
