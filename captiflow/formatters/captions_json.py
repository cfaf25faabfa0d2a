"""Caption JSON export for the preview player and editors.

WHY: The browser preview and third-party editors consume captions as
structured data: one object per caption with its timing, text, and the
word to emphasize. A documented JSON shape (see captions_schema.json)
lets clients validate what they receive.

HOW: Walks the CaptionTrack and emits a top-level object with the
source metadata and a ``captions`` array. Times are rounded to the
millisecond, matching the SRT writer.

RULES:
- Top-level keys: source_filename, template, duration_s, language, captions
- Each caption: id, text, start_time, end_time, word_count, highlighted_word
- highlighted_word is null when the caption has no emphasis
- Output suffix: "-captions.json"
- Media type: "application/json"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from captiflow.core.ir import CaptionTrack, CaptionUnit
from captiflow.formatters.base import BaseFormatter, FormatterOutput

SCHEMA_PATH = Path(__file__).with_name("captions_schema.json")


def load_schema() -> Dict[str, Any]:
    """Return the JSON Schema describing this formatter's output."""
    with open(SCHEMA_PATH, encoding="utf-8") as f:
        return json.load(f)


def _caption_to_dict(caption: CaptionUnit) -> Dict[str, Any]:
    return {
        "id": caption.id,
        "text": caption.text,
        "start_time": round(caption.start_s, 3),
        "end_time": round(caption.end_s, 3),
        "word_count": len(caption.text.split()),
        "highlighted_word": caption.highlighted_word,
    }


def track_to_dict(track: CaptionTrack) -> Dict[str, Any]:
    return {
        "source_filename": track.source_filename,
        "template": track.template,
        "duration_s": round(track.duration_s, 3),
        "language": track.language,
        "captions": [_caption_to_dict(c) for c in track.captions],
    }


class CaptionsJSONFormatter(BaseFormatter):
    """Formatter that produces the caption JSON document."""

    @property
    def name(self) -> str:
        return "Caption JSON"

    def format(self, track: CaptionTrack) -> List[FormatterOutput]:
        content = json.dumps(track_to_dict(track), indent=2, ensure_ascii=False)
        return [
            FormatterOutput(
                suffix="-captions.json",
                content=content + "\n",
                media_type="application/json",
            )
        ]
