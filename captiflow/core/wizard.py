"""Upload-to-download wizard as an explicit finite-state machine.

WHY: Captioning one video walks through fixed stages (upload,
validation, transcription, style selection, preview, download) and any
stage can fail. Scattered boolean flags make it unclear which errors
belong to which stage and when a retry is allowed. A single session
object with named states and checked transitions makes stage-scoped
error reporting and retry/backoff a function of state.

HOW: WizardSession holds the current WizardStage plus the data each
stage produces (filename, captions, template). Each transition method
checks its source stage and raises InvalidTransitionError otherwise.
fail() moves to FAILED and records a ProcessingError for the stage that
was active; retry() returns to that stage and hands back the backoff delay.

RULES:
- UPLOADING → VALIDATING → TRANSCRIBING → SELECTING_STYLE → PREVIEWING
  → DOWNLOADING; PREVIEWING ↔ SELECTING_STYLE via back_to_templates()
- Any non-failed stage → FAILED via fail()
- FAILED → failed stage via retry(), only when the error is retryable
  and attempts remain
- start_over() from any stage discards captions and returns to UPLOADING
- The session is the only writer of its own state
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from captiflow.config import DEFAULT_TEMPLATE, TRANSCRIPTION_MAX_ATTEMPTS
from captiflow.core.errors import (
    STAGE_CAPTION_PROCESSING,
    STAGE_TRANSCRIPTION,
    STAGE_UPLOAD_VALIDATION,
    STAGE_VIDEO_GENERATION,
    ProcessingError,
    classify_error,
    get_retry_delay,
)
from captiflow.core.ir import CaptionUnit
from captiflow.core.overlay import get_template

logger = logging.getLogger(__name__)


class WizardStage(str, enum.Enum):
    UPLOADING = "uploading"
    VALIDATING = "validating"
    TRANSCRIBING = "transcribing"
    SELECTING_STYLE = "selecting_style"
    PREVIEWING = "previewing"
    DOWNLOADING = "downloading"
    FAILED = "failed"


# Error-classification stage for each wizard stage.
_ERROR_STAGE: Dict[WizardStage, str] = {
    WizardStage.UPLOADING: STAGE_UPLOAD_VALIDATION,
    WizardStage.VALIDATING: STAGE_UPLOAD_VALIDATION,
    WizardStage.TRANSCRIBING: STAGE_TRANSCRIPTION,
    WizardStage.SELECTING_STYLE: STAGE_CAPTION_PROCESSING,
    WizardStage.PREVIEWING: STAGE_CAPTION_PROCESSING,
    WizardStage.DOWNLOADING: STAGE_VIDEO_GENERATION,
}


class InvalidTransitionError(RuntimeError):
    """Raised when a transition is requested from the wrong stage."""


@dataclass
class Failure:
    """What failed, where, and how many retries were made."""

    stage: WizardStage
    error: ProcessingError
    attempts: int = 0


@dataclass
class WizardSession:
    """State for one captioning session.

    RULES:
    - stage: current WizardStage
    - failure: set only while stage is FAILED
    - attempts: retry count per stage, reset by start_over()
    - max_attempts: retries allowed per stage before giving up
    """

    stage: WizardStage = WizardStage.UPLOADING
    video_filename: Optional[str] = None
    captions: List[CaptionUnit] = field(default_factory=list)
    template: str = DEFAULT_TEMPLATE
    failure: Optional[Failure] = None
    attempts: Dict[WizardStage, int] = field(default_factory=dict)
    max_attempts: int = TRANSCRIPTION_MAX_ATTEMPTS

    # ------------------------------------------------------------------
    # Forward transitions
    # ------------------------------------------------------------------

    def submit_upload(self, filename: str) -> None:
        self._expect(WizardStage.UPLOADING)
        self.video_filename = filename
        self._move(WizardStage.VALIDATING)

    def validation_passed(self) -> None:
        self._expect(WizardStage.VALIDATING)
        self._move(WizardStage.TRANSCRIBING)

    def transcription_complete(self, captions: List[CaptionUnit]) -> None:
        self._expect(WizardStage.TRANSCRIBING)
        self.captions = list(captions)
        self._move(WizardStage.SELECTING_STYLE)

    def select_style(self, template_id: str) -> None:
        self._expect(WizardStage.SELECTING_STYLE)
        self.template = get_template(template_id).id
        self._move(WizardStage.PREVIEWING)

    def back_to_templates(self) -> None:
        self._expect(WizardStage.PREVIEWING)
        self._move(WizardStage.SELECTING_STYLE)

    def request_download(self) -> None:
        self._expect(WizardStage.PREVIEWING)
        self._move(WizardStage.DOWNLOADING)

    # ------------------------------------------------------------------
    # Failure and recovery
    # ------------------------------------------------------------------

    def fail(self, exc: BaseException) -> ProcessingError:
        """Record a failure of the current stage and move to FAILED."""
        if self.stage == WizardStage.FAILED:
            raise InvalidTransitionError("Session has already failed")
        error = classify_error(_ERROR_STAGE[self.stage], exc)
        self.failure = Failure(
            stage=self.stage,
            error=error,
            attempts=self.attempts.get(self.stage, 0),
        )
        logger.info("Wizard stage %s failed: %s", self.stage.value, error.error)
        self._move(WizardStage.FAILED)
        return error

    @property
    def can_retry(self) -> bool:
        if self.stage != WizardStage.FAILED or self.failure is None:
            return False
        return self.failure.error.can_retry and self.failure.attempts < self.max_attempts

    def retry(self) -> float:
        """Return to the failed stage; returns the backoff delay in seconds."""
        self._expect(WizardStage.FAILED)
        if not self.can_retry:
            raise InvalidTransitionError(
                "Stage {} cannot be retried".format(self.failure.stage.value)
            )
        failed_stage = self.failure.stage
        attempt = self.failure.attempts
        self.attempts[failed_stage] = attempt + 1
        self.failure = None
        self._move(failed_stage)
        return get_retry_delay(attempt)

    def start_over(self) -> None:
        self.video_filename = None
        self.captions = []
        self.template = DEFAULT_TEMPLATE
        self.failure = None
        self.attempts = {}
        self._move(WizardStage.UPLOADING)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _expect(self, *stages: WizardStage) -> None:
        if self.stage not in stages:
            raise InvalidTransitionError(
                "Expected stage {}, session is in {}".format(
                    " or ".join(s.value for s in stages), self.stage.value
                )
            )

    def _move(self, stage: WizardStage) -> None:
        logger.debug("Wizard %s -> %s", self.stage.value, stage.value)
        self.stage = stage
