"""Shared test fixtures for the captiflow test suite.

WHY: Several test modules need the same small transcripts and caption
sequences. Centralizing them here keeps the expected timings in one
place.

HOW: Plain module-level data plus pytest fixtures that return fresh
copies, so tests can mutate what they receive.

RULES:
- SIX_WORDS segments into "Hello world this" [0, 1.4] and
  "is a test" [1.4, 2.1] with default options
- SAMPLE_CAPTIONS has a silent gap between 2.1s and 3.0s
"""

from typing import Any, Dict, List

import pytest

from captiflow.core.ir import CaptionUnit, TimedText, WordTranscript


# ---------------------------------------------------------------------------
# Word-level transcript
# ---------------------------------------------------------------------------

SIX_WORDS: List[Dict[str, Any]] = [
    {"word": "Hello", "start": 0.0, "end": 0.4},
    {"word": "world", "start": 0.5, "end": 0.9},
    {"word": "this",  "start": 1.0, "end": 1.4},
    {"word": "is",    "start": 1.4, "end": 1.6},
    {"word": "a",     "start": 1.7, "end": 1.8},
    {"word": "test",  "start": 1.9, "end": 2.1},
]


@pytest.fixture
def six_word_transcript():
    """WordTranscript for "Hello world this is a test"."""
    return WordTranscript(words=[
        TimedText(text=w["word"], start_s=w["start"], end_s=w["end"]) for w in SIX_WORDS
    ])


@pytest.fixture
def whisper_verbose_json():
    """A verbose_json response with word and segment timestamps."""
    return {
        "task": "transcribe",
        "language": "english",
        "duration": 2.5,
        "text": "Hello world this is a test",
        "words": [dict(w) for w in SIX_WORDS],
        "segments": [
            {"id": 0, "seek": 0, "start": 0.0, "end": 2.1, "text": " Hello world this is a test"},
        ],
    }


# ---------------------------------------------------------------------------
# Caption sequence
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_captions():
    """Three captions: two back to back, then one after a gap."""
    return [
        CaptionUnit(id=1, text="Hello world this", start_s=0.0, end_s=1.4),
        CaptionUnit(id=2, text="is a test", start_s=1.4, end_s=2.1, highlighted_word="test"),
        CaptionUnit(id=3, text="after a gap", start_s=3.0, end_s=4.0),
    ]
