"""Core caption pipeline: IR, segmentation, playback sync, and overlays.

WHY: The core package is the stable heart of CaptiFlow: the dataclasses
every layer shares and the timing logic that turns transcripts into
caption units and keeps them in sync with playback.

HOW: ir.py defines the data structures, segmenter.py builds caption units
from any transcript shape, sync.py maps playback time to the active
caption, overlay.py renders it, wizard.py tracks the session stages,
errors.py classifies failures, validation.py checks uploads.

RULES:
- IR dataclasses are the contract; change with care
- Segmentation is pure and format-agnostic, no I/O here
"""
