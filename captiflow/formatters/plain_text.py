"""Plain text caption listing with playback clock ranges.

WHY: A quick human-readable review of what will appear on screen and
when, without opening a subtitle editor.

HOW: One line per caption: ``[m:ss - m:ss] text``, using the same clock
format the preview player shows.

RULES:
- One line per caption, in order
- Highlighted word is not marked
- Output suffix: "-captions.txt"
- Media type: "text/plain"
"""

from __future__ import annotations

from typing import List

from captiflow.core.ir import CaptionTrack
from captiflow.core.sync import format_clock
from captiflow.formatters.base import BaseFormatter, FormatterOutput


class PlainTextFormatter(BaseFormatter):
    """Formatter that lists captions with their clock ranges."""

    @property
    def name(self) -> str:
        return "Plain Text"

    def format(self, track: CaptionTrack) -> List[FormatterOutput]:
        lines = [
            "[{} - {}] {}".format(format_clock(c.start_s), format_clock(c.end_s), c.text)
            for c in track.captions
        ]
        content = "\n".join(lines) + "\n" if lines else ""
        return [
            FormatterOutput(
                suffix="-captions.txt",
                content=content,
                media_type="text/plain",
            )
        ]
