"""CaptiFlow: caption pipeline for short vertical videos.

WHY: A speech-to-text service returns either per-word timestamps, coarse
sentence segments, or bare text. A captioned short video needs small,
time-bounded caption units that stay in sync with playback and render
with a chosen visual style. This package turns any of those transcript
shapes into caption units and serves them to previews and downloads.

HOW: Three-stage pipeline: ingest (transcription API client), segment
(core caption units), present (playback synchronizer, overlay rendering,
subtitle formatters). Each stage is independently testable.

RULES:
- All formatters consume the same CaptionTrack
- The Segmenter is the single place that handles timed and degraded input
- Caption units are sorted and never overlap
"""

__version__ = "0.1.0"
