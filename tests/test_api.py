"""Tests for the FastAPI caption API.

WHY: The HTTP API is what the browser wizard talks to. Each endpoint must
return the documented status codes and bodies: happy paths, 404 for
unknown jobs, 409 for jobs that are not finished, 400 for bad input.

HOW: Endpoint tests use the FastAPI TestClient with the background
pipeline patched out; tests that need a finished job set its captions
and status directly through the store. The pipeline itself is tested by
calling _run_caption_pipeline with a mocked TranscriptionClient.

RULES:
- The transcription service is never called
- The job store is reset before each test
- Tests cover: happy paths, 404 not found, 409 conflict, 400 bad request
"""

from __future__ import annotations

import asyncio
import base64
import io
import shutil
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from captiflow.api.client import TranscriptionAPIError
from captiflow.api.models import WhisperResponse
from captiflow.server.app import _run_caption_pipeline, app, job_store
from captiflow.server.jobs import JobStatus, JobStore

from conftest import SIX_WORDS


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_job_store():
    """Clear all jobs before each test to ensure isolation."""
    job_store._jobs.clear()
    yield
    for job in list(job_store._jobs.values()):
        shutil.rmtree(job.output_dir, ignore_errors=True)
    job_store._jobs.clear()


@pytest.fixture
def client():
    """TestClient with the background caption pipeline disabled."""
    with patch(
        "captiflow.server.app._run_transcription_sync",
        new=lambda job_id, store: None,
    ):
        yield TestClient(app)


@pytest.fixture
def completed_job(sample_captions):
    """A finished job holding the sample captions and one SRT output file."""
    job = job_store.create_job(filename="clip.mp4", config={"template": "bold"})
    (job.output_dir / "clip-captions.srt").write_text("1\n00:00:00,000 --> 00:00:01,400\nHello\n")
    job_store.update_job(
        job.id,
        status=JobStatus.COMPLETED,
        captions=sample_captions,
        duration_s=4.5,
        output_files=["clip-captions.srt"],
    )
    return job


def _make_video_file(name: str = "clip.mp4", content: bytes = b"fake video data"):
    return ("file", (name, io.BytesIO(content), "video/mp4"))


# ---------------------------------------------------------------------------
# POST /transcriptions
# ---------------------------------------------------------------------------


class TestCreateTranscription:

    def test_submit_job_returns_201(self, client):
        resp = client.post("/transcriptions", files=[_make_video_file()])
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "pending"
        assert body["filename"] == "clip.mp4"

        job = job_store.get_job(body["id"])
        assert job is not None
        assert job.input_path.read_bytes() == b"fake video data"

    def test_config_is_stored(self, client):
        resp = client.post(
            "/transcriptions",
            files=[_make_video_file()],
            data={
                "template": "NEON",
                "language": "en",
                "output_formats": "srt_captions, plain_text",
                "video_duration": "12.5",
                "width": "1080",
                "height": "1920",
                "max_words": "4",
            },
        )
        assert resp.status_code == 201
        config = job_store.get_job(resp.json()["id"]).config
        assert config["template"] == "neon"
        assert config["language"] == "en"
        assert config["output_formats"] == ["srt_captions", "plain_text"]
        assert config["video_duration"] == 12.5
        assert (config["width"], config["height"]) == (1080, 1920)
        assert config["max_words"] == 4

    def test_unknown_template_falls_back(self, client):
        resp = client.post("/transcriptions", files=[_make_video_file()], data={"template": "glitter"})
        assert job_store.get_job(resp.json()["id"]).config["template"] == "minimal"

    def test_path_in_filename_is_stripped(self, client):
        resp = client.post("/transcriptions", files=[_make_video_file("../../etc/clip.mp4")])
        assert resp.json()["filename"] == "clip.mp4"

    def test_unsupported_extension(self, client):
        resp = client.post("/transcriptions", files=[_make_video_file("clip.gif")])
        assert resp.status_code == 400
        assert "Unsupported file type" in resp.json()["detail"]

    def test_unknown_output_format(self, client):
        resp = client.post(
            "/transcriptions", files=[_make_video_file()], data={"output_formats": "srt_captions,docx"},
        )
        assert resp.status_code == 400
        assert "docx" in resp.json()["detail"]

    def test_bad_word_bounds(self, client):
        resp = client.post(
            "/transcriptions", files=[_make_video_file()], data={"min_words": "5", "max_words": "2"},
        )
        assert resp.status_code == 400
        assert not job_store.list_jobs()

    def test_too_many_jobs(self, client):
        job_store.max_jobs = 1
        try:
            assert client.post("/transcriptions", files=[_make_video_file()]).status_code == 201
            resp = client.post("/transcriptions", files=[_make_video_file()])
            assert resp.status_code == 429
        finally:
            job_store.max_jobs = 100


# ---------------------------------------------------------------------------
# GET /transcriptions/{id} and /captions
# ---------------------------------------------------------------------------


class TestJobStatus:

    def test_pending_job(self, client):
        job_id = client.post("/transcriptions", files=[_make_video_file()]).json()["id"]
        body = client.get("/transcriptions/{}".format(job_id)).json()
        assert body["status"] == "pending"
        assert body["caption_count"] == 0
        assert body["failure"] is None

    def test_completed_job(self, client, completed_job):
        body = client.get("/transcriptions/{}".format(completed_job.id)).json()
        assert body["status"] == "completed"
        assert body["caption_count"] == 3
        assert body["output_files"] == ["clip-captions.srt"]

    def test_failed_job_carries_report(self, client):
        job = job_store.create_job(filename="clip.mp4")
        job_store.update_job(
            job.id,
            status=JobStatus.FAILED,
            error="Video processing failed",
            failure={
                "success": False,
                "error": "Video processing failed",
                "stage": "upload_validation",
                "can_retry": False,
                "suggestions": ["Use a vertical video with 9:16 aspect ratio"],
                "error_code": "UPLOAD_VALIDATION_ERROR",
                "technical_error": "Invalid aspect ratio 1920x1080",
            },
        )
        body = client.get("/transcriptions/{}".format(job.id)).json()
        assert body["failure"]["stage"] == "upload_validation"
        assert body["failure"]["suggestions"] == ["Use a vertical video with 9:16 aspect ratio"]

    def test_unknown_job(self, client):
        assert client.get("/transcriptions/nope").status_code == 404


class TestCaptions:

    def test_completed_job_captions(self, client, completed_job):
        body = client.get("/transcriptions/{}/captions".format(completed_job.id)).json()
        assert body["template"] == "bold"
        assert body["duration_s"] == 4.5
        assert body["captions"][1] == {
            "id": 2,
            "text": "is a test",
            "start_time": 1.4,
            "end_time": 2.1,
            "highlighted_word": "test",
        }

    def test_not_completed(self, client):
        job = job_store.create_job(filename="clip.mp4")
        resp = client.get("/transcriptions/{}/captions".format(job.id))
        assert resp.status_code == 409
        assert "pending" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# GET /transcriptions/{id}/overlay
# ---------------------------------------------------------------------------


class TestOverlay:

    def test_active_caption_with_emphasis(self, client, completed_job):
        body = client.get(
            "/transcriptions/{}/overlay".format(completed_job.id), params={"t": 1.5},
        ).json()
        assert body["clock"] == "0:01"
        overlay = body["overlay"]
        assert overlay["caption_id"] == 2
        assert overlay["css_class"] == "caption-bold"
        assert [t["text"] for t in overlay["tokens"] if t["emphasized"]] == ["test"]
        assert overlay["html"] == (
            '<p class="caption-bold" style="bottom: 10%; font-size: 24px">'
            'is a <span class="caption-emphasis">test</span></p>'
        )

    def test_gap_has_no_overlay(self, client, completed_job):
        body = client.get(
            "/transcriptions/{}/overlay".format(completed_job.id), params={"t": 2.5},
        ).json()
        assert body["overlay"] is None
        assert body["clock"] == "0:02"

    def test_seek_clamped_to_duration(self, client, completed_job):
        body = client.get(
            "/transcriptions/{}/overlay".format(completed_job.id), params={"t": 99},
        ).json()
        assert body["time"] == 4.5
        assert body["overlay"] is None

    def test_style_overrides(self, client, completed_job):
        body = client.get(
            "/transcriptions/{}/overlay".format(completed_job.id),
            params={"t": 0.2, "template": "minimal", "position": 150, "font_size": 32, "highlight": "world"},
        ).json()
        overlay = body["overlay"]
        assert overlay["css_class"] == "caption-minimal"
        assert overlay["position_pct"] == 100.0
        assert overlay["font_size"] == 32
        # minimal does not emphasize words
        assert overlay["tokens"] == [{"text": "Hello world this", "emphasized": False}]

    def test_bad_font_size(self, client, completed_job):
        resp = client.get(
            "/transcriptions/{}/overlay".format(completed_job.id), params={"t": 0.2, "font_size": 0},
        )
        assert resp.status_code == 400

    def test_not_completed(self, client):
        job = job_store.create_job(filename="clip.mp4")
        assert client.get("/transcriptions/{}/overlay".format(job.id)).status_code == 409


# ---------------------------------------------------------------------------
# Files and delete
# ---------------------------------------------------------------------------


class TestFiles:

    def test_list_files(self, client, completed_job):
        body = client.get("/transcriptions/{}/files".format(completed_job.id)).json()
        assert body["files"][0]["filename"] == "clip-captions.srt"
        assert body["files"][0]["media_type"] == "application/x-subrip"
        assert body["files"][0]["size"] > 0

    def test_download(self, client, completed_job):
        resp = client.get("/transcriptions/{}/files/clip-captions.srt".format(completed_job.id))
        assert resp.status_code == 200
        assert resp.text.startswith("1\n00:00:00,000")
        assert 'filename="clip-captions.srt"' in resp.headers["content-disposition"]

    def test_unknown_file(self, client, completed_job):
        resp = client.get("/transcriptions/{}/files/clip-captions.json".format(completed_job.id))
        assert resp.status_code == 404

    def test_traversal_rejected(self, client, completed_job):
        resp = client.get("/transcriptions/{}/files/..clip.srt".format(completed_job.id))
        assert resp.status_code == 400


class TestDelete:

    def test_delete_then_gone(self, client, completed_job):
        output_dir = completed_job.output_dir
        assert client.delete("/transcriptions/{}".format(completed_job.id)).status_code == 204
        assert client.get("/transcriptions/{}".format(completed_job.id)).status_code == 404
        assert not output_dir.exists()

    def test_delete_unknown(self, client):
        assert client.delete("/transcriptions/nope").status_code == 404


# ---------------------------------------------------------------------------
# POST /captions/segment
# ---------------------------------------------------------------------------


class TestSegment:

    def test_word_transcript(self, client):
        resp = client.post("/captions/segment", json={"transcript": {"words": SIX_WORDS}})
        assert resp.status_code == 200
        body = resp.json()
        assert body["variant"] == "words"
        assert [c["text"] for c in body["captions"]] == ["Hello world this", "is a test"]

    def test_bare_word_list(self, client):
        body = client.post("/captions/segment", json={"transcript": SIX_WORDS}).json()
        assert body["variant"] == "words"

    def test_untimed_transcript(self, client):
        body = client.post(
            "/captions/segment",
            json={"transcript": {"text": "one two three four five six seven eight"}, "video_duration": 8.0},
        ).json()
        assert body["variant"] == "untimed"
        assert [(c["start_time"], c["end_time"]) for c in body["captions"]] == [(0.0, 4.0), (4.0, 8.0)]

    def test_custom_bounds(self, client):
        body = client.post(
            "/captions/segment",
            json={"transcript": {"words": SIX_WORDS}, "min_words": 1, "max_words": 2},
        ).json()
        assert len(body["captions"]) == 3

    def test_unrecognized_transcript(self, client):
        resp = client.post("/captions/segment", json={"transcript": {"foo": 1}})
        assert resp.status_code == 422
        assert "no words" in resp.json()["detail"]

    def test_bad_bounds(self, client):
        resp = client.post(
            "/captions/segment",
            json={"transcript": {"words": SIX_WORDS}, "min_words": 4, "max_words": 2},
        )
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# POST /generate
# ---------------------------------------------------------------------------


def _caption_payload():
    return [
        {"id": 1, "text": "Hello world", "start_time": 0.0, "end_time": 1.0},
        {"id": 2, "text": "is a test", "start_time": 1.0, "end_time": 2.0, "highlighted_word": "test"},
    ]


class TestGenerate:

    def test_success(self, client):
        video = base64.b64encode(b"video bytes").decode("ascii")
        resp = client.post(
            "/generate",
            json={"video_data": video, "captions": _caption_payload(), "template": "neon"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["video_data"] == video
        assert body["template"] == "neon"
        assert body["caption_count"] == 2
        assert "2\n00:00:01,000 --> 00:00:02,000\nis a <b>test</b>\n" in body["captions_srt"]

    def test_unknown_template_falls_back(self, client):
        video = base64.b64encode(b"v").decode("ascii")
        body = client.post(
            "/generate", json={"video_data": video, "captions": _caption_payload(), "template": "x"},
        ).json()
        assert body["template"] == "minimal"

    @pytest.mark.parametrize("video_data, detail", [
        ("", "No video data"),
        ("not base64!!", "not valid base64"),
    ])
    def test_bad_video_data(self, client, video_data, detail):
        resp = client.post("/generate", json={"video_data": video_data, "captions": _caption_payload()})
        assert resp.status_code == 400
        assert detail in resp.json()["detail"]

    def test_no_captions(self, client):
        video = base64.b64encode(b"v").decode("ascii")
        resp = client.post("/generate", json={"video_data": video, "captions": []})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No captions provided"

    def test_invalid_caption(self, client):
        video = base64.b64encode(b"v").decode("ascii")
        captions = _caption_payload()
        captions[1]["start_time"] = 0.5
        resp = client.post("/generate", json={"video_data": video, "captions": captions})
        assert resp.status_code == 400
        assert "position 2" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# Listings and health
# ---------------------------------------------------------------------------


class TestListings:

    def test_templates(self, client):
        body = client.get("/templates").json()
        ids = [t["id"] for t in body]
        assert ids == ["minimal", "bold", "gradient", "neon", "corporate", "social"]
        minimal = body[0]
        assert minimal["css_class"] == "caption-minimal"
        assert minimal["supports_emphasis"] is False

    def test_formats(self, client):
        body = client.get("/formats").json()
        assert {f["key"]: f["suffix"] for f in body} == {
            "captions_json": "-captions.json",
            "plain_text": "-captions.txt",
            "srt_captions": "-captions.srt",
        }

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["version"]


# ---------------------------------------------------------------------------
# Background pipeline
# ---------------------------------------------------------------------------


def _mock_client(response=None, error=None):
    """Patch target for TranscriptionClient; returns (class_mock, instance)."""
    client_cls = MagicMock()
    instance = client_cls.return_value
    instance.__aenter__.return_value = instance
    instance.__aexit__.return_value = False
    instance.transcribe_with_retry = AsyncMock(return_value=response, side_effect=error)
    return client_cls, instance


class TestCaptionPipeline:

    @pytest.fixture
    def store(self):
        store = JobStore()
        yield store
        for job in store.list_jobs():
            store.delete_job(job.id)

    def _job(self, store, **config):
        job = store.create_job(filename="clip.mp4", config=dict({"template": "bold"}, **config))
        job.input_path.write_bytes(b"fake video data")
        return job

    def test_success_writes_outputs(self, store, whisper_verbose_json):
        job = self._job(store)
        client_cls, instance = _mock_client(response=WhisperResponse.from_dict(whisper_verbose_json))
        with patch("captiflow.api.client.TranscriptionClient", client_cls):
            asyncio.run(_run_caption_pipeline(job.id, store))

        job = store.get_job(job.id)
        assert job.status == JobStatus.COMPLETED
        assert [c.text for c in job.captions] == ["Hello world this", "is a test"]
        assert job.duration_s == 2.5
        assert job.language == "english"
        assert job.output_files == ["clip-captions.srt", "clip-captions.json", "clip-captions.txt"]
        for name in job.output_files:
            assert (job.output_dir / name).exists()
        instance.transcribe_with_retry.assert_awaited_once()

    def test_requested_formats_only(self, store, whisper_verbose_json):
        job = self._job(store, output_formats=["plain_text"], max_words=2, min_words=1)
        client_cls, _ = _mock_client(response=WhisperResponse.from_dict(whisper_verbose_json))
        with patch("captiflow.api.client.TranscriptionClient", client_cls):
            asyncio.run(_run_caption_pipeline(job.id, store))
        job = store.get_job(job.id)
        assert job.output_files == ["clip-captions.txt"]
        assert len(job.captions) == 3

    def test_single_word_bound_override(self, store, whisper_verbose_json):
        job = self._job(store, max_words=6)
        client_cls, _ = _mock_client(response=WhisperResponse.from_dict(whisper_verbose_json))
        with patch("captiflow.api.client.TranscriptionClient", client_cls):
            asyncio.run(_run_caption_pipeline(job.id, store))
        job = store.get_job(job.id)
        assert job.status == JobStatus.COMPLETED
        assert [c.text for c in job.captions] == ["Hello world this is a test"]

    def test_zero_min_words_is_rejected_not_defaulted(self, store, whisper_verbose_json):
        job = self._job(store, min_words=0)
        client_cls, _ = _mock_client(response=WhisperResponse.from_dict(whisper_verbose_json))
        with patch("captiflow.api.client.TranscriptionClient", client_cls):
            asyncio.run(_run_caption_pipeline(job.id, store))
        job = store.get_job(job.id)
        assert job.status == JobStatus.FAILED
        assert job.failure["stage"] == "caption_processing"

    def test_upload_validation_failure(self, store):
        job = self._job(store, width=1920, height=1080)
        client_cls, instance = _mock_client()
        with patch("captiflow.api.client.TranscriptionClient", client_cls):
            asyncio.run(_run_caption_pipeline(job.id, store))

        job = store.get_job(job.id)
        assert job.status == JobStatus.FAILED
        assert job.failure["stage"] == "upload_validation"
        assert job.failure["error_code"] == "UPLOAD_VALIDATION_ERROR"
        instance.transcribe_with_retry.assert_not_awaited()

    def test_transcription_failure(self, store):
        job = self._job(store)
        client_cls, _ = _mock_client(error=TranscriptionAPIError(401, "invalid key"))
        with patch("captiflow.api.client.TranscriptionClient", client_cls):
            asyncio.run(_run_caption_pipeline(job.id, store))

        job = store.get_job(job.id)
        assert job.status == JobStatus.FAILED
        assert job.failure["stage"] == "transcription"
        assert job.failure["error_code"] == "API_KEY_ERROR"
        assert job.completed_at is not None

    def test_silent_video_completes_without_captions(self, store):
        job = self._job(store)
        silent = WhisperResponse.from_dict({"text": "", "duration": 5.0, "words": [], "segments": []})
        client_cls, _ = _mock_client(response=silent)
        with patch("captiflow.api.client.TranscriptionClient", client_cls):
            asyncio.run(_run_caption_pipeline(job.id, store))

        job = store.get_job(job.id)
        assert job.status == JobStatus.COMPLETED
        assert job.captions == []
        assert job.duration_s == 5.0
        assert (job.output_dir / "clip-captions.srt").read_text(encoding="utf-8") == ""

    def test_missing_job_is_noop(self, store):
        asyncio.run(_run_caption_pipeline("missing", store))
