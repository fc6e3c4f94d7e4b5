"""
Data model for video generation jobs.

Domain types are plain dataclasses. Payloads coming back from the service
are validated with pydantic at the boundary and immediately parsed into the
closed JobStatus set.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict

from .errors import GenerationCanceled

# Kling accepts 5 or 10 second clips
ALLOWED_DURATIONS = (5, 10)

ImageSource = Union[str, Path, bytes]

# Stage names used to tag errors and progress events
STAGE_SUBMISSION = "submission"
STAGE_POLLING = "polling"
STAGE_DOWNLOAD = "download"


class GenerationMode(str, Enum):
    """Which kind of generation the panel asked for."""
    TEXT_TO_VIDEO = "t2v"
    IMAGE_TO_VIDEO = "i2v"


class JobState(str, Enum):
    """Closed set of job states."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    UNKNOWN = "unknown"


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELED})

# Remote status strings -> JobState
REMOTE_STATUS_MAP = {
    "starting": JobState.QUEUED,
    "queued": JobState.QUEUED,
    "pending": JobState.QUEUED,
    "processing": JobState.RUNNING,
    "running": JobState.RUNNING,
    "succeeded": JobState.SUCCEEDED,
    "successful": JobState.SUCCEEDED,
    "failed": JobState.FAILED,
    "canceled": JobState.CANCELED,
    "cancelled": JobState.CANCELED,
    "aborted": JobState.CANCELED,
}


@dataclass
class GenerationRequest:
    """Request for video generation."""
    mode: GenerationMode
    prompt: str
    duration_seconds: int = 5
    negative_prompt: Optional[str] = None

    # Path to an image file or the raw image bytes
    start_image: Optional[ImageSource] = None
    end_image: Optional[ImageSource] = None  # image-to-video only

    @property
    def uses_images(self) -> bool:
        return self.mode == GenerationMode.IMAGE_TO_VIDEO


@dataclass(frozen=True)
class JobHandle:
    """Identifier of a submitted job."""
    remote_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class JobStatus:
    """One observed state of a remote job."""
    state: JobState
    result_url: Optional[str] = None
    reason: Optional[str] = None
    raw_status: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @classmethod
    def from_remote(
        cls,
        status: Optional[str],
        output: Any = None,
        error: Any = None,
    ) -> "JobStatus":
        """Parse a remote status string and its payload."""
        raw = (status or "").strip()
        state = REMOTE_STATUS_MAP.get(raw.lower(), JobState.UNKNOWN)

        if state == JobState.SUCCEEDED:
            return cls(state=state, result_url=_first_url(output), raw_status=raw)
        if state == JobState.FAILED:
            reason = str(error) if error else "Generation failed (no specific reason)"
            return cls(state=state, reason=reason, raw_status=raw)
        return cls(state=state, raw_status=raw)

    def describe(self) -> str:
        """Human-readable summary for progress output."""
        if self.state == JobState.SUCCEEDED:
            return f"succeeded: {self.result_url}"
        if self.state == JobState.FAILED:
            return f"failed: {self.reason}"
        if self.state == JobState.UNKNOWN:
            return f"unknown status '{self.raw_status}'"
        return self.state.value


def _first_url(output: Any) -> Optional[str]:
    if isinstance(output, str):
        return output or None
    if isinstance(output, (list, tuple)):
        for item in output:
            url = _first_url(item)
            if url:
                return url
        return None
    if isinstance(output, dict):
        return _first_url(output.get("url") or output.get("video"))
    return None


@dataclass(frozen=True)
class DownloadedArtifact:
    """A fully written video file on local disk."""
    local_path: str
    size_bytes: int


class ProgressKind(str, Enum):
    """Kinds of progress notifications."""
    SUBMITTED = "submitted"
    QUEUED = "queued"
    RUNNING = "running"
    UNKNOWN_STATUS = "unknown_status"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    POLL_ERROR = "poll_error"
    DOWNLOAD_STARTED = "download_started"
    DOWNLOAD_PROGRESS = "download_progress"
    DOWNLOAD_COMPLETE = "download_complete"
    ERROR = "error"


STATE_PROGRESS_KINDS = {
    JobState.QUEUED: ProgressKind.QUEUED,
    JobState.RUNNING: ProgressKind.RUNNING,
    JobState.SUCCEEDED: ProgressKind.SUCCEEDED,
    JobState.FAILED: ProgressKind.FAILED,
    JobState.CANCELED: ProgressKind.CANCELED,
    JobState.UNKNOWN: ProgressKind.UNKNOWN_STATUS,
}


@dataclass(frozen=True)
class ProgressEvent:
    """A progress notification. ``str(event)`` is the display text."""
    stage: str
    kind: ProgressKind
    message: str
    percent: Optional[float] = None

    def __str__(self) -> str:
        return self.message


class CancelToken:
    """Call-scoped cancellation flag, checked at each suspension point."""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Canceled by user"):
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def raise_if_cancelled(self, stage: Optional[str] = None):
        if self._cancelled:
            raise GenerationCanceled(self.reason or "Canceled", stage=stage)


# ============================================================
# Remote payloads
# ============================================================

class PredictionResponse(BaseModel):
    """Prediction object returned by the service."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    status: Optional[str] = None
    output: Any = None
    error: Any = None

    def to_status(self) -> JobStatus:
        return JobStatus.from_remote(self.status, self.output, self.error)


class ErrorResponse(BaseModel):
    """Error body; the service is not consistent about which field it fills."""
    model_config = ConfigDict(extra="ignore")

    message: Optional[str] = None
    detail: Any = None
    error: Any = None
    title: Optional[str] = None

    def best_message(self) -> Optional[str]:
        for value in (self.message, self.detail, self.error, self.title):
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
        return None
