"""In-memory caption job store with TTL cleanup.

WHY: Captioning a video means a remote transcription call that can take
tens of seconds. The HTTP API returns a job ID immediately and runs the
pipeline in the background. The job also holds the caption sequence for
the rest of the editing session (overlay previews, downloads), so it is
the server-side counterpart of a wizard session.

HOW: Three components work together:
  JobStatus  — enum of valid job states
  Job        — dataclass holding job metadata, captions, and temp directory
  JobStore   — thread-safe dict-based store with create/update/get/list/delete
               and TTL cleanup

RULES:
- All store mutations are protected by threading.Lock
- Each job gets a dedicated temp directory for the upload and output files
- TTL-based expiry removes finished jobs and their temp directories
- A failed job carries a ProcessingError dict naming the failed stage
- Job IDs are UUID4 hex strings generated at creation time
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from captiflow.core.ir import CaptionUnit

logger = logging.getLogger(__name__)

# Default time-to-live for completed/failed jobs (seconds)
DEFAULT_TTL_SECONDS = 3600


class JobStatus(str, enum.Enum):
    """Valid states for a caption job.

    RULES:
    - pending: job created, not yet started
    - validating: upload limits being checked
    - transcribing: waiting on the transcription service (including retries)
    - segmenting: transcript received, captions and output files being built
    - completed: captions and output files ready
    - failed: a stage failed for good; see Job.failure
    """

    PENDING = "pending"
    VALIDATING = "validating"
    TRANSCRIBING = "transcribing"
    SEGMENTING = "segmenting"
    COMPLETED = "completed"
    FAILED = "failed"


_TERMINAL = (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class Job:
    """Metadata, captions, and state for a single caption job.

    RULES:
    - id: UUID4 hex string, immutable after creation
    - filename: sanitized upload filename, stored inside output_dir
    - captions: filled when segmentation finishes
    - failure: ProcessingError.to_dict() when status is FAILED
    - attempts: transcription attempts made so far
    - output_files: filenames in output_dir available for download
    """

    id: str
    status: JobStatus
    filename: str
    output_dir: Path
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    error: Optional[str] = None
    failure: Optional[Dict[str, Any]] = None
    attempts: int = 0
    config: Dict[str, Any] = field(default_factory=dict)
    captions: List[CaptionUnit] = field(default_factory=list)
    duration_s: Optional[float] = None
    language: str = ""
    output_files: List[str] = field(default_factory=list)

    @property
    def input_path(self) -> Path:
        return self.output_dir / self.filename


class JobStore:
    """Thread-safe in-memory store for caption jobs.

    WHY: Request handlers and background tasks touch job state at the
    same time. A single store with a lock keeps updates consistent.

    RULES:
    - create_job() raises ValueError once max_jobs jobs are held
    - get_job() returns None for missing job IDs
    - update_job() applies only the non-None arguments
    - delete_job() removes the job and its temp directory
    - cleanup_expired() only removes jobs in a terminal state
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = 100,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(
        self,
        filename: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> Job:
        """Create a new PENDING job with a dedicated temp directory."""
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(
                        self.max_jobs
                    )
                )

            job_id = uuid.uuid4().hex
            now = time.time()
            output_dir = Path(tempfile.mkdtemp(prefix="captiflow_job_"))

            job = Job(
                id=job_id,
                status=JobStatus.PENDING,
                filename=filename,
                output_dir=output_dir,
                created_at=now,
                updated_at=now,
                config=config or {},
            )
            self._jobs[job_id] = job

        logger.info("Created job %s for file %s", job_id, filename)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        """Return all jobs, oldest first."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def update_job(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        error: Optional[str] = None,
        failure: Optional[Dict[str, Any]] = None,
        attempts: Optional[int] = None,
        captions: Optional[List[CaptionUnit]] = None,
        duration_s: Optional[float] = None,
        language: Optional[str] = None,
        output_files: Optional[List[str]] = None,
    ) -> Optional[Job]:
        """Update a job's mutable fields.

        RULES:
        - Returns the updated Job, or None if job_id not found
        - updated_at is always bumped
        - completed_at is set when status becomes COMPLETED or FAILED
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            now = time.time()

            if status is not None:
                job.status = status
            if error is not None:
                job.error = error
            if failure is not None:
                job.failure = failure
            if attempts is not None:
                job.attempts = attempts
            if captions is not None:
                job.captions = list(captions)
            if duration_s is not None:
                job.duration_s = duration_s
            if language is not None:
                job.language = language
            if output_files is not None:
                job.output_files = output_files

            job.updated_at = now

            if job.status in _TERMINAL:
                job.completed_at = now

            return job

    def delete_job(self, job_id: str) -> bool:
        """Delete a job and clean up its temp directory.

        Returns True if the job was found and deleted.
        """
        with self._lock:
            job = self._jobs.pop(job_id, None)

        if job is None:
            return False

        self._cleanup_output_dir(job.output_dir)
        logger.info("Deleted job %s", job_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove terminal jobs older than the TTL; returns the count removed."""
        now = time.time()
        expired_jobs: List[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.status not in _TERMINAL or job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired_jobs.append(self._jobs.pop(job_id))

        for job in expired_jobs:
            self._cleanup_output_dir(job.output_dir)
            logger.info("Expired job %s (completed %.0fs ago)", job.id, now - job.completed_at)

        return len(expired_jobs)

    @staticmethod
    def _cleanup_output_dir(output_dir: Path) -> None:
        # Best-effort: a leftover temp dir is logged, never raised.
        if output_dir.exists():
            try:
                shutil.rmtree(output_dir)
            except OSError:
                logger.warning("Failed to clean up temp dir: %s", output_dir)
