"""
Video Generation Service

Submits Kling jobs to Replicate, waits for them to finish and downloads the
result:
- GenerationClient: submission and status queries
- JobPoller: waits for a terminal status
- ArtifactFetcher: streams the video to disk
- GenerationOrchestrator: all three as one call
"""

from .client import GenerationClient, validate_request
from .errors import (
    DownloadError,
    GenerationCanceled,
    GenerationError,
    JobFailedError,
    NetworkError,
    PollingTimeoutError,
    SubmissionError,
    ValidationError,
)
from .fetcher import ArtifactFetcher
from .layers import LayerInfo, build_request, parse_layer_info
from .models import (
    ALLOWED_DURATIONS,
    CancelToken,
    DownloadedArtifact,
    GenerationMode,
    GenerationRequest,
    JobHandle,
    JobState,
    JobStatus,
    ProgressEvent,
    ProgressKind,
)
from .orchestrator import GenerationOrchestrator, GenerationRun, RunState
from .poller import JobPoller

__all__ = [
    "GenerationClient",
    "validate_request",
    "JobPoller",
    "ArtifactFetcher",
    "GenerationOrchestrator",
    "GenerationRun",
    "RunState",
    "LayerInfo",
    "build_request",
    "parse_layer_info",
    "ALLOWED_DURATIONS",
    "CancelToken",
    "DownloadedArtifact",
    "GenerationMode",
    "GenerationRequest",
    "JobHandle",
    "JobState",
    "JobStatus",
    "ProgressEvent",
    "ProgressKind",
    "GenerationError",
    "ValidationError",
    "SubmissionError",
    "NetworkError",
    "PollingTimeoutError",
    "JobFailedError",
    "DownloadError",
    "GenerationCanceled",
]
