"""Command-line caption wizard.

WHY: Users need a way to caption a video (or re-segment an existing
transcript) from the terminal, with the same stages, limits, and retry
behavior as the web wizard.

HOW: Uses argparse for the input file and options, then drives a
WizardSession through its stages: validate the input, transcribe (via
the API for videos, from disk for .json transcripts), segment, apply the
template, optionally print a playback preview, and save the selected
output formats. A failed stage is retried with backoff while the session
allows it; otherwise the failure and its suggestions are printed.

RULES:
- Positional argument: a video file or a .json transcript
- Video input is checked against the upload limits before any API call
- --formats: comma-separated formatter keys (default: all registered)
- Output naming: {stem}{suffix}, numeric suffix for conflicts (-captions-2.srt)
- Status output goes to stderr; --preview lines go to stdout
- Exit code 1 on any unrecovered failure
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from captiflow.config import DEFAULT_TEMPLATE, MAX_WORDS_PER_CAPTION, MIN_WORDS_PER_CAPTION
from captiflow.core.errors import ProcessingError
from captiflow.core.ir import CaptionTrack, CaptionUnit, TranscriptionResult
from captiflow.core.overlay import TEMPLATES, OverlayStyle, render_overlay
from captiflow.core.segmenter import SegmenterOptions, parse_transcription, segment_transcript
from captiflow.core.sync import PlaybackSynchronizer, format_clock
from captiflow.core.validation import validate_upload
from captiflow.core.wizard import WizardSession
from captiflow.formatters import FORMATTERS
from captiflow.formatters.base import FormatterOutput

PREVIEW_TICK_S = 0.25


def _status(msg: str) -> None:
    """Print a status message to stderr so stdout stays pipeable."""
    print(msg, file=sys.stderr, flush=True)


def _report_failure(error: ProcessingError) -> None:
    _status("Error ({}): {}".format(error.stage, error.error))
    for suggestion in error.suggestions:
        _status("  - {}".format(suggestion))


def _resolve_output_path(stem: str, suffix: str, output_dir: Path) -> Path:
    """Return a free output path, adding a numeric suffix on conflict.

    RULES:
    - First attempt: {stem}{suffix} (e.g. clip-captions.srt)
    - Conflict: counter inserted before the extension (clip-captions-2.srt)
    - Counter starts at 2
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name, suffix_ext = suffix[:dot_idx], suffix[dot_idx:]
    else:
        suffix_name, suffix_ext = suffix, ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(output: FormatterOutput, stem: str, output_dir: Path) -> Path:
    path = _resolve_output_path(stem, output.suffix, output_dir)
    if isinstance(output.content, bytes):
        path.write_bytes(output.content)
    else:
        path.write_text(output.content, encoding="utf-8")
    return path


def _is_transcript(path: Path) -> bool:
    return path.suffix.lower() == ".json"


def _validate_input(input_path: Path, args: argparse.Namespace) -> None:
    if _is_transcript(input_path):
        return
    validate_upload(
        input_path.name,
        input_path.stat().st_size,
        duration_s=args.duration,
        width=args.width,
        height=args.height,
    )


async def _transcribe(input_path: Path, args: argparse.Namespace) -> TranscriptionResult:
    """Produce a transcript from a saved .json file or the transcription API."""
    if _is_transcript(input_path):
        _status("Reading transcript {}...".format(input_path.name))
        data = json.loads(input_path.read_text(encoding="utf-8"))
        return parse_transcription(data, args.duration)

    from captiflow.api.client import TranscriptionClient

    async with TranscriptionClient() as client:
        response = await client.transcribe(input_path, language=args.language, on_status=_status)
    return response.to_transcription_result(video_duration=args.duration)


def _format_overlay_line(caption: CaptionUnit, template: str) -> str:
    rendered = render_overlay(caption, OverlayStyle(template=template))
    text = " ".join(
        "*{}*".format(tok.text) if tok.emphasized else tok.text
        for tok in rendered.tokens
    )
    return "{:>5}  {}".format(format_clock(caption.start_s), text)


def print_preview(captions: List[CaptionUnit], template: str, duration_s: float) -> None:
    """Play the captions through a headless player and print each overlay.

    WHY: A quick check of what appears on screen, and when, before
    saving files.

    HOW: Feeds playback ticks every PREVIEW_TICK_S seconds to a
    PlaybackSynchronizer and prints the overlay whenever the active
    caption changes. Gaps (no active caption) are not printed.
    """
    player = PlaybackSynchronizer(captions, duration_s=duration_s)

    def _on_change(caption: Optional[CaptionUnit]) -> None:
        if caption is not None:
            print(_format_overlay_line(caption, template), flush=True)

    initial = player.active_caption
    if initial is not None:
        _on_change(initial)
    player.subscribe(_on_change)
    player.play()
    tick = 1
    while tick * PREVIEW_TICK_S < duration_s:
        player.on_time_update(tick * PREVIEW_TICK_S)
        tick += 1
    player.on_ended()
    player.close()


async def _run_wizard(args: argparse.Namespace, options: SegmenterOptions) -> int:
    """Drive one WizardSession from upload to download; returns an exit code."""
    input_path = Path(args.input_file).resolve()
    if not input_path.is_file():
        _status("Error: File not found: {}".format(input_path))
        return 1

    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _status("Error: Output directory does not exist: {}".format(output_dir))
        return 1

    session = WizardSession()
    session.submit_upload(input_path.name)

    _status("Validating {}...".format(input_path.name))
    try:
        _validate_input(input_path, args)
    except Exception as exc:
        _report_failure(session.fail(exc))
        return 1
    session.validation_passed()

    while True:
        try:
            result = await _transcribe(input_path, args)
            break
        except Exception as exc:
            error = session.fail(exc)
            if not session.can_retry:
                _report_failure(error)
                return 1
            delay = session.retry()
            _status("{} Retrying in {:.0f}s...".format(error.error, delay))
            await asyncio.sleep(delay)

    # Segmentation is not retried; its failures belong to caption processing.
    try:
        captions = segment_transcript(result, options)
    except Exception as exc:
        session.transcription_complete([])
        _report_failure(session.fail(exc))
        return 1
    session.transcription_complete(captions)
    _status("  {} captions".format(len(captions)))

    session.select_style(args.template)
    duration = args.duration or (captions[-1].end_s if captions else 0.0)
    if args.preview:
        print_preview(session.captions, session.template, duration)

    session.request_download()
    track = CaptionTrack(
        captions=session.captions,
        source_filename=input_path.name,
        duration_s=duration,
        template=session.template,
    )
    saved_files = []  # type: List[Path]
    try:
        for key in args.format_keys:
            formatter = FORMATTERS[key]()
            for output in formatter.format(track):
                saved_files.append(_save_output(output, input_path.stem, output_dir))
    except OSError as exc:
        _report_failure(session.fail(exc))
        return 1

    _status("")
    _status("Done! Saved {} file(s) to {}".format(len(saved_files), output_dir))
    for f in saved_files:
        _status("  {}".format(f.name))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="captiflow",
        description="Caption a short vertical video (or a saved transcript) and "
                    "save SRT, JSON, and plain-text caption files.",
    )
    parser.add_argument(
        "input_file",
        help="Video file to caption, or a .json transcript to segment.",
    )
    parser.add_argument(
        "--template",
        default=DEFAULT_TEMPLATE,
        help="Caption template: {} (default: %(default)s).".format(", ".join(TEMPLATES)),
    )
    parser.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of output formats. "
             "Available: {}. Default: all.".format(", ".join(sorted(FORMATTERS.keys()))),
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: same as input file).",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Video duration in seconds (used for untimed transcripts and limits).",
    )
    parser.add_argument("--width", type=int, default=None, help="Video frame width in pixels.")
    parser.add_argument("--height", type=int, default=None, help="Video frame height in pixels.")
    parser.add_argument(
        "--language",
        default=None,
        help="ISO 639-1 language hint for transcription (e.g. 'en').",
    )
    parser.add_argument(
        "--min-words",
        type=int,
        default=MIN_WORDS_PER_CAPTION,
        help="Minimum words per caption (default: %(default)s).",
    )
    parser.add_argument(
        "--max-words",
        type=int,
        default=MAX_WORDS_PER_CAPTION,
        help="Maximum words per caption (default: %(default)s).",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Print each caption overlay as it would appear during playback.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    - Exits with status 1 on failure, returns normally on success
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.formats:
        args.format_keys = [f.strip() for f in args.formats.split(",") if f.strip()]
        for key in args.format_keys:
            if key not in FORMATTERS:
                parser.error("Unknown format '{}'. Available formats: {}".format(
                    key, ", ".join(sorted(FORMATTERS.keys()))
                ))
    else:
        args.format_keys = list(FORMATTERS.keys())

    try:
        options = SegmenterOptions(min_words=args.min_words, max_words=args.max_words)
    except ValueError as exc:
        parser.error(str(exc))

    code = asyncio.run(_run_wizard(args, options))
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
