"""FastAPI application with caption API routes and OpenAPI docs.

WHY: The browser wizard (and curl, scripts, other tools) need an HTTP
API to submit a video, poll for captions, preview overlays at any
playback time, and download the result. FastAPI provides automatic
OpenAPI documentation, request validation, and background task support.

HOW: A single FastAPI app exposes endpoints grouped by tags. POST
/transcriptions accepts a multipart upload, creates a job, and runs the
pipeline in the background: validate → transcribe (with retry) →
segment → write output files. Failures are classified per stage with
classify_error() and stored on the job. Stateless endpoints segment raw
transcripts and package the final download.

RULES:
- Error responses use the ErrorResponse schema (HTTPException detail)
- Background work uses FastAPI BackgroundTasks
- The job store is a module-level singleton
- Upload extension is checked up front; the remaining upload limits are
  checked in the background so failures carry suggestions
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response

from captiflow import __version__
from captiflow.config import DEFAULT_TEMPLATE, SUPPORTED_VIDEO_FORMATS
from captiflow.core.errors import (
    STAGE_CAPTION_PROCESSING,
    STAGE_TRANSCRIPTION,
    STAGE_UPLOAD_VALIDATION,
    InvalidCaptionError,
    InvalidTranscriptError,
    classify_error,
)
from captiflow.core.ir import (
    CaptionTrack,
    SegmentTranscript,
    UntimedTranscript,
    WordTranscript,
)
from captiflow.core.overlay import TEMPLATES, OverlayStyle, get_template, render_overlay
from captiflow.core.segmenter import (
    SegmenterOptions,
    parse_transcription,
    segment_transcript,
    validate_captions,
)
from captiflow.core.sync import PlaybackSynchronizer, format_clock
from captiflow.core.validation import validate_upload
from captiflow.formatters import FORMATTERS
from captiflow.formatters.srt import format_srt
from captiflow.server.jobs import Job, JobStatus, JobStore
from captiflow.server.models import (
    CaptionListResponse,
    CaptionModel,
    ErrorResponse,
    FileInfo,
    FileListResponse,
    FormatInfo,
    GenerateRequest,
    GenerateResponse,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
    OverlayModel,
    OverlayResponse,
    OverlayTokenModel,
    ProcessingErrorModel,
    SegmentRequest,
    SegmentResponse,
    TemplateInfo,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="CaptiFlow Caption API",
    description=(
        "REST API for turning short vertical videos into timed, styled "
        "captions. Submit a video, poll for captions, preview the overlay "
        "at any playback time, and download SRT, JSON, or text output."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

_VARIANT_NAMES = {
    WordTranscript: "words",
    SegmentTranscript: "segments",
    UntimedTranscript: "untimed",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: Job) -> JobResponse:
    """Convert an internal Job dataclass to a JobResponse Pydantic model."""
    return JobResponse(
        id=job.id,
        status=job.status.value,
        filename=job.filename,
        created_at=job.created_at,
        config=job.config,
        attempts=job.attempts,
        caption_count=len(job.captions),
        error=job.error,
        failure=ProcessingErrorModel(**job.failure) if job.failure else None,
        output_files=job.output_files if job.output_files else None,
    )


def _validate_file_extension(filename: str) -> None:
    """Raise HTTPException if the file extension is not supported."""
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_VIDEO_FORMATS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(SUPPORTED_VIDEO_FORMATS))
            ),
        )


def segmenter_options(min_words: Optional[int], max_words: Optional[int]) -> Optional[SegmenterOptions]:
    """SegmenterOptions from optional word-count overrides, or None for defaults.

    Raises:
        ValueError: If the resulting bounds are invalid.
    """
    if min_words is None and max_words is None:
        return None
    defaults = SegmenterOptions()
    return SegmenterOptions(
        min_words=min_words if min_words is not None else defaults.min_words,
        max_words=max_words if max_words is not None else defaults.max_words,
    )


def _build_options(min_words: Optional[int], max_words: Optional[int]) -> Optional[SegmenterOptions]:
    """segmenter_options with HTTP 400 on bad bounds."""
    try:
        return segmenter_options(min_words, max_words)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _get_job_or_404(job_id: str) -> Job:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return job


def _require_completed(job: Job) -> None:
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )


def _track_duration(job: Job) -> float:
    if job.duration_s:
        return job.duration_s
    return job.captions[-1].end_s if job.captions else 0.0


async def _run_caption_pipeline(job_id: str, store: JobStore) -> None:
    """Run the full caption pipeline for a job.

    WHY: This is the background task behind POST /transcriptions: check
    the upload limits, transcribe the video, segment the transcript into
    captions, and write every requested output file.

    HOW: Tracks the current error-classification stage as it goes. Any
    exception is mapped through classify_error() for that stage and the
    resulting ProcessingError is stored on the failed job.

    RULES:
    - Updates job status at each pipeline stage
    - Transcription retries happen inside the client, with backoff
    - Output files are saved to the job's output_dir
    """
    from captiflow.api.client import TranscriptionClient

    job = store.get_job(job_id)
    if job is None:
        return

    config = job.config
    stage = STAGE_UPLOAD_VALIDATION
    attempts = [0]

    def _on_status(message: str) -> None:
        if message.startswith("Transcribing"):
            attempts[0] += 1
            store.update_job(job_id, attempts=attempts[0])

    try:
        store.update_job(job_id, status=JobStatus.VALIDATING)
        validate_upload(
            job.filename,
            job.input_path.stat().st_size,
            duration_s=config.get("video_duration"),
            width=config.get("width"),
            height=config.get("height"),
        )

        stage = STAGE_TRANSCRIPTION
        store.update_job(job_id, status=JobStatus.TRANSCRIBING)
        async with TranscriptionClient() as client:
            response = await client.transcribe_with_retry(
                job.input_path,
                language=config.get("language"),
                on_status=_on_status,
            )

        stage = STAGE_CAPTION_PROCESSING
        store.update_job(job_id, status=JobStatus.SEGMENTING, language=response.language)
        result = response.to_transcription_result(video_duration=config.get("video_duration"))
        options = segmenter_options(config.get("min_words"), config.get("max_words"))
        captions = segment_transcript(result, options)
        duration = config.get("video_duration") or response.duration
        if not duration:
            duration = captions[-1].end_s if captions else 0.0

        track = CaptionTrack(
            captions=captions,
            source_filename=job.filename,
            duration_s=duration,
            template=config.get("template", DEFAULT_TEMPLATE),
            language=response.language,
        )

        format_keys = config.get("output_formats") or list(FORMATTERS.keys())
        output_filenames = []
        stem = Path(job.filename).stem
        for key in format_keys:
            if key not in FORMATTERS:
                continue
            for output in FORMATTERS[key]().format(track):
                out_filename = "{}{}".format(stem, output.suffix)
                out_path = job.output_dir / out_filename
                if isinstance(output.content, bytes):
                    out_path.write_bytes(output.content)
                else:
                    out_path.write_text(output.content, encoding="utf-8")
                output_filenames.append(out_filename)

        store.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            captions=captions,
            duration_s=duration,
            output_files=output_filenames,
        )
        logger.info("Job %s completed with %d captions", job_id, len(captions))

    except Exception as exc:
        logger.exception("Caption pipeline failed for job %s at stage %s", job_id, stage)
        failure = classify_error(stage, exc)
        store.update_job(
            job_id,
            status=JobStatus.FAILED,
            error=failure.error,
            failure=failure.to_dict(),
        )


def _run_transcription_sync(job_id: str, store: JobStore) -> None:
    """Synchronous wrapper for the async caption pipeline.

    WHY: FastAPI BackgroundTasks run synchronous callables in a thread
    pool. This wraps the async pipeline with asyncio.run().
    """
    asyncio.run(_run_caption_pipeline(job_id, store))


# ---------------------------------------------------------------------------
# Endpoints: Transcriptions
# ---------------------------------------------------------------------------


@app.post(
    "/transcriptions",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["transcriptions"],
    summary="Submit a caption job",
    description=(
        "Upload a short vertical video. Returns a job ID immediately; "
        "transcription and segmentation run in the background. "
        "Poll GET /transcriptions/{id} for status updates."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file type or configuration"},
        429: {"model": ErrorResponse, "description": "Too many concurrent jobs"},
    },
)
async def create_transcription(
    background_tasks: BackgroundTasks,
    file: Annotated[
        UploadFile,
        File(description="Video file to caption"),
    ],
    template: Annotated[
        str,
        Form(description="Caption template id (minimal, bold, gradient, neon, corporate, social)."),
    ] = DEFAULT_TEMPLATE,
    language: Annotated[
        Optional[str],
        Form(description="Optional ISO 639-1 language hint (e.g. 'en')."),
    ] = None,
    output_formats: Annotated[
        Optional[str],
        Form(
            description=(
                "Comma-separated output formats. Available: srt_captions, "
                "captions_json, plain_text. Defaults to all."
            )
        ),
    ] = None,
    video_duration: Annotated[
        Optional[float],
        Form(description="Video duration in seconds, if known."),
    ] = None,
    width: Annotated[
        Optional[int],
        Form(description="Video frame width in pixels, if known."),
    ] = None,
    height: Annotated[
        Optional[int],
        Form(description="Video frame height in pixels, if known."),
    ] = None,
    min_words: Annotated[
        Optional[int],
        Form(description="Minimum words per caption."),
    ] = None,
    max_words: Annotated[
        Optional[int],
        Form(description="Maximum words per caption."),
    ] = None,
) -> JobCreatedResponse:
    # Sanitize filename to prevent path traversal
    filename = Path(file.filename or "upload").name
    _validate_file_extension(filename)
    _build_options(min_words, max_words)

    format_keys = None  # type: Optional[List[str]]
    if output_formats:
        format_keys = [f.strip() for f in output_formats.split(",") if f.strip()]
        for key in format_keys:
            if key not in FORMATTERS:
                raise HTTPException(
                    status_code=400,
                    detail="Unknown output format '{}'. Available: {}".format(
                        key, ", ".join(sorted(FORMATTERS.keys()))
                    ),
                )

    config = {
        "template": get_template(template).id,
        "language": language,
        "output_formats": format_keys,
        "video_duration": video_duration,
        "width": width,
        "height": height,
        "min_words": min_words,
        "max_words": max_words,
    }

    try:
        job = job_store.create_job(filename=filename, config=config)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    content = await file.read()
    job.input_path.write_bytes(content)

    background_tasks.add_task(_run_transcription_sync, job.id, job_store)

    return JobCreatedResponse(
        id=job.id,
        status=job.status.value,
        filename=job.filename,
    )


@app.get(
    "/transcriptions/{job_id}",
    response_model=JobResponse,
    tags=["transcriptions"],
    summary="Get caption job status",
    description=(
        "Poll this endpoint to track a caption job. Failed jobs carry a "
        "stage-scoped failure report with suggestions."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def get_transcription(job_id: str) -> JobResponse:
    return _job_to_response(_get_job_or_404(job_id))


@app.get(
    "/transcriptions/{job_id}/captions",
    response_model=CaptionListResponse,
    tags=["transcriptions"],
    summary="Get the captions of a completed job",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def get_transcription_captions(job_id: str) -> CaptionListResponse:
    job = _get_job_or_404(job_id)
    _require_completed(job)
    return CaptionListResponse(
        job_id=job.id,
        template=job.config.get("template", DEFAULT_TEMPLATE),
        duration_s=_track_duration(job),
        captions=[CaptionModel.from_unit(c) for c in job.captions],
    )


@app.get(
    "/transcriptions/{job_id}/overlay",
    response_model=OverlayResponse,
    tags=["transcriptions"],
    summary="Render the caption overlay at a playback time",
    description=(
        "Seeks a preview player to time t and returns the active caption "
        "rendered with the requested template, position, and font size. "
        "The overlay is null when no caption covers t."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid style parameters"},
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def get_transcription_overlay(
    job_id: str,
    t: Annotated[float, Query(description="Playback time in seconds.")] = 0.0,
    template: Annotated[
        Optional[str],
        Query(description="Template id; defaults to the job's template."),
    ] = None,
    position: Annotated[
        float,
        Query(description="Bottom offset as a percentage of frame height."),
    ] = 10.0,
    font_size: Annotated[int, Query(description="Font size in CSS pixels.")] = 24,
    highlight: Annotated[
        Optional[str],
        Query(description="Word to emphasize, overriding the caption's own."),
    ] = None,
) -> OverlayResponse:
    job = _get_job_or_404(job_id)
    _require_completed(job)

    player = PlaybackSynchronizer(job.captions, duration_s=_track_duration(job))
    try:
        caption = player.seek(t)
        current = player.current_time
    finally:
        player.close()

    style = OverlayStyle(
        template=template or job.config.get("template", DEFAULT_TEMPLATE),
        position_pct=position,
        font_size=font_size,
        highlighted_word=highlight,
    )
    try:
        rendered = render_overlay(caption, style)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    overlay = None
    if rendered is not None:
        overlay = OverlayModel(
            caption_id=rendered.caption_id,
            text=rendered.text,
            css_class=rendered.css_class,
            position_pct=rendered.position_pct,
            font_size=rendered.font_size,
            tokens=[OverlayTokenModel(text=tok.text, emphasized=tok.emphasized) for tok in rendered.tokens],
            html=rendered.to_html(),
        )
    return OverlayResponse(job_id=job.id, time=current, clock=format_clock(current), overlay=overlay)


@app.get(
    "/transcriptions/{job_id}/files",
    response_model=FileListResponse,
    tags=["transcriptions"],
    summary="List output files for a completed job",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def list_transcription_files(job_id: str) -> FileListResponse:
    job = _get_job_or_404(job_id)
    _require_completed(job)

    files = []
    for fname in job.output_files:
        fpath = job.output_dir / fname
        if fpath.exists():
            files.append(FileInfo(
                filename=fname,
                media_type=_infer_media_type(fname),
                size=fpath.stat().st_size,
            ))
    return FileListResponse(job_id=job.id, files=files)


@app.get(
    "/transcriptions/{job_id}/files/{filename}",
    tags=["transcriptions"],
    summary="Download a single output file",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid filename"},
        404: {"model": ErrorResponse, "description": "Job or file not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def download_transcription_file(job_id: str, filename: str) -> Response:
    if "/" in filename or "\\" in filename or ".." in filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    job = _get_job_or_404(job_id)
    _require_completed(job)

    if filename not in job.output_files:
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found in job output files.".format(filename),
        )

    fpath = job.output_dir / filename
    if not fpath.exists():
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found on disk.".format(filename),
        )

    return Response(
        content=fpath.read_bytes(),
        media_type=_infer_media_type(filename),
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@app.delete(
    "/transcriptions/{job_id}",
    status_code=204,
    tags=["transcriptions"],
    summary="Delete a caption job",
    description="Delete a job, its captions, and its files (start over).",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def delete_transcription(job_id: str) -> Response:
    if not job_store.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Captions
# ---------------------------------------------------------------------------


@app.post(
    "/captions/segment",
    response_model=SegmentResponse,
    tags=["captions"],
    summary="Segment a raw transcript into captions",
    description=(
        "Stateless segmentation. Accepts word-level, segment-level, or "
        "untimed transcripts and returns ordered, non-overlapping captions."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid segmentation options"},
        422: {"model": ErrorResponse, "description": "Transcript has no usable shape"},
    },
)
async def segment_captions(request: SegmentRequest) -> SegmentResponse:
    options = _build_options(request.min_words, request.max_words)
    try:
        result = parse_transcription(request.transcript, request.video_duration)
        captions = segment_transcript(result, options)
    except InvalidTranscriptError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return SegmentResponse(
        variant=_VARIANT_NAMES[type(result)],
        captions=[CaptionModel.from_unit(c) for c in captions],
    )


@app.post(
    "/generate",
    response_model=GenerateResponse,
    tags=["captions"],
    summary="Package captions for download",
    description=(
        "Validates the captions and template and returns SRT content with "
        "the video unchanged. Captions are not burned into the video."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid video data or captions"},
    },
)
async def generate_video(request: GenerateRequest) -> GenerateResponse:
    if not request.video_data:
        raise HTTPException(status_code=400, detail="No video data provided")
    try:
        base64.b64decode(request.video_data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Video data is not valid base64")

    if not request.captions:
        raise HTTPException(status_code=400, detail="No captions provided")
    captions = [c.to_unit() for c in request.captions]
    try:
        validate_captions(captions)
    except InvalidCaptionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    template = get_template(request.template)
    logger.info(
        "Generated %d captions for %s with template %s",
        len(captions), request.filename, template.id,
    )
    return GenerateResponse(
        video_data=request.video_data,
        captions_srt=format_srt(captions),
        template=template.id,
        caption_count=len(captions),
    )


@app.get(
    "/templates",
    response_model=List[TemplateInfo],
    tags=["captions"],
    summary="List caption templates",
)
async def list_templates() -> List[TemplateInfo]:
    return [
        TemplateInfo(
            id=t.id,
            name=t.name,
            description=t.description,
            css_class=t.css_class,
            supports_emphasis=t.supports_emphasis,
        )
        for t in TEMPLATES.values()
    ]


# ---------------------------------------------------------------------------
# Endpoints: Formats
# ---------------------------------------------------------------------------


@app.get(
    "/formats",
    response_model=List[FormatInfo],
    tags=["formats"],
    summary="List available output formats",
)
async def list_formats() -> List[FormatInfo]:
    empty = CaptionTrack(captions=[], source_filename="empty.mp4", duration_s=0.0)
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        outputs = formatter.format(empty)
        result.append(FormatInfo(
            key=key,
            name=formatter.name,
            suffix=outputs[0].suffix if outputs else "",
        ))
    return result


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for the captiflow-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


def _infer_media_type(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    mapping = {
        ".json": "application/json",
        ".srt": "application/x-subrip",
        ".txt": "text/plain",
    }
    return mapping.get(ext, "application/octet-stream")
