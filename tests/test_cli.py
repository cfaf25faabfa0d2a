"""Tests for the command-line caption wizard.

WHY: The CLI walks the same wizard stages as the web flow. Input checks,
retry on a transient transcription failure, output naming, and the
playback preview all need to behave without a network connection.

HOW: Saved .json transcripts exercise the offline path. Video input uses
a patched TranscriptionClient. main() is called with an explicit argv
and output is captured with capsys.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from captiflow.api.client import TranscriptionAPIError
from captiflow.api.models import WhisperResponse
from captiflow.cli import _resolve_output_path, main, print_preview
from captiflow.core.errors import InvalidTranscriptError

from conftest import SIX_WORDS


@pytest.fixture
def transcript_file(tmp_path):
    path = tmp_path / "talk.json"
    path.write_text(json.dumps({"words": SIX_WORDS}), encoding="utf-8")
    return path


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"fake video data")
    return path


def _mock_client(transcribe):
    client_cls = MagicMock()
    instance = client_cls.return_value
    instance.__aenter__.return_value = instance
    instance.__aexit__.return_value = False
    instance.transcribe = transcribe
    return client_cls


class TestTranscriptInput:

    def test_writes_all_formats(self, transcript_file, tmp_path, capsys):
        main([str(transcript_file)])
        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == [
            "talk-captions.json",
            "talk-captions.srt",
            "talk-captions.txt",
            "talk.json",
        ]
        srt = (tmp_path / "talk-captions.srt").read_text(encoding="utf-8")
        assert srt.startswith("1\n00:00:00,000 --> 00:00:01,400\nHello world this\n")
        assert "2 captions" in capsys.readouterr().err

    def test_selected_formats_and_template(self, transcript_file, tmp_path):
        main([str(transcript_file), "--formats", "captions_json", "--template", "neon"])
        data = json.loads((tmp_path / "talk-captions.json").read_text(encoding="utf-8"))
        assert data["template"] == "neon"
        assert not (tmp_path / "talk-captions.srt").exists()

    def test_conflict_gets_numeric_suffix(self, transcript_file, tmp_path):
        main([str(transcript_file), "--formats", "srt_captions"])
        main([str(transcript_file), "--formats", "srt_captions"])
        assert (tmp_path / "talk-captions-2.srt").exists()

    def test_output_dir(self, transcript_file, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        main([str(transcript_file), "--formats", "plain_text", "--output-dir", str(out)])
        assert (out / "talk-captions.txt").read_text(encoding="utf-8").startswith("[0:00 - 0:01]")

    def test_word_bounds(self, transcript_file, tmp_path):
        main([str(transcript_file), "--formats", "plain_text", "--min-words", "1", "--max-words", "2"])
        lines = (tmp_path / "talk-captions.txt").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3

    def test_preview_goes_to_stdout(self, transcript_file, capsys):
        main([str(transcript_file), "--formats", "plain_text", "--preview"])
        out = capsys.readouterr().out.splitlines()
        assert out == [" 0:00  Hello world this", " 0:01  is a test"]

    def test_unusable_transcript_fails(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"foo": 1}), encoding="utf-8")
        with pytest.raises(SystemExit) as excinfo:
            main([str(path)])
        assert excinfo.value.code == 1
        assert "Error (" in capsys.readouterr().err


class TestVideoInput:

    def test_invalid_aspect_ratio_stops_before_api(self, video_file, capsys):
        transcribe = AsyncMock()
        with patch("captiflow.api.client.TranscriptionClient", _mock_client(transcribe)):
            with pytest.raises(SystemExit) as excinfo:
                main([str(video_file), "--width", "1920", "--height", "1080"])
        assert excinfo.value.code == 1
        err = capsys.readouterr().err
        assert "Error (upload_validation)" in err
        assert "Use a vertical video with 9:16 aspect ratio" in err
        transcribe.assert_not_awaited()

    def test_transient_failure_is_retried(self, video_file, tmp_path, whisper_verbose_json, capsys):
        transcribe = AsyncMock(side_effect=[
            TranscriptionAPIError(503, "Service Unavailable"),
            WhisperResponse.from_dict(whisper_verbose_json),
        ])
        with patch("captiflow.api.client.TranscriptionClient", _mock_client(transcribe)), \
                patch("captiflow.cli.asyncio.sleep", new=AsyncMock()) as sleep:
            main([str(video_file), "--formats", "srt_captions"])
        assert transcribe.await_count == 2
        sleep.assert_awaited_once_with(1.0)
        assert "Retrying in 1s" in capsys.readouterr().err
        assert (tmp_path / "clip-captions.srt").exists()

    def test_auth_failure_not_retried(self, video_file, capsys):
        transcribe = AsyncMock(side_effect=TranscriptionAPIError(401, "invalid key"))
        with patch("captiflow.api.client.TranscriptionClient", _mock_client(transcribe)):
            with pytest.raises(SystemExit):
                main([str(video_file)])
        assert transcribe.await_count == 1
        assert "Error (transcription)" in capsys.readouterr().err

    def test_segmentation_failure_is_caption_processing(self, video_file, whisper_verbose_json, capsys):
        transcribe = AsyncMock(return_value=WhisperResponse.from_dict(whisper_verbose_json))
        segment = MagicMock(side_effect=InvalidTranscriptError("Unsupported transcription result"))
        with patch("captiflow.api.client.TranscriptionClient", _mock_client(transcribe)), \
                patch("captiflow.cli.segment_transcript", segment), \
                patch("captiflow.cli.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(SystemExit) as excinfo:
                main([str(video_file)])
        assert excinfo.value.code == 1
        assert transcribe.await_count == 1
        segment.assert_called_once()
        sleep.assert_not_awaited()
        assert "Error (caption_processing)" in capsys.readouterr().err


class TestArguments:

    def test_missing_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main([str(tmp_path / "nope.mp4")])
        assert excinfo.value.code == 1
        assert "File not found" in capsys.readouterr().err

    def test_unknown_format(self, transcript_file):
        with pytest.raises(SystemExit) as excinfo:
            main([str(transcript_file), "--formats", "docx"])
        assert excinfo.value.code == 2

    def test_bad_word_bounds(self, transcript_file):
        with pytest.raises(SystemExit) as excinfo:
            main([str(transcript_file), "--min-words", "4", "--max-words", "2"])
        assert excinfo.value.code == 2


class TestHelpers:

    def test_resolve_output_path_counts_up(self, tmp_path):
        (tmp_path / "a-captions.srt").write_text("x")
        (tmp_path / "a-captions-2.srt").write_text("x")
        assert _resolve_output_path("a", "-captions.srt", tmp_path).name == "a-captions-3.srt"

    def test_preview_skips_gaps(self, sample_captions, capsys):
        print_preview(sample_captions, "bold", 4.0)
        assert capsys.readouterr().out.splitlines() == [
            " 0:00  Hello world this",
            " 0:01  is a *test*",
            " 0:03  after a gap",
        ]
