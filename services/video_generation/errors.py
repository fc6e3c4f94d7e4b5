"""
Error taxonomy for video generation.

Every failure surfaced by the generation core is a GenerationError. The
orchestrator sets ``stage`` so callers can tell a failed submission from a
failed download.
"""

from typing import Optional


class GenerationError(Exception):
    """Base class for all generation failures."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.message = message
        self.stage = stage
        super().__init__(message)

    def describe(self) -> str:
        if self.stage:
            return f"{self.stage} failed: {self.message}"
        return self.message


class ValidationError(GenerationError):
    """The request is malformed. Raised before any network I/O."""


class SubmissionError(GenerationError):
    """The service rejected the job."""

    def __init__(self, message: str, status_code: Optional[int] = None, stage: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message, stage=stage)


class NetworkError(GenerationError):
    """Transport-level failure while talking to the service."""


class PollingTimeoutError(GenerationError, TimeoutError):
    """The job did not reach a terminal state within the polling budget."""

    def __init__(self, message: str, queries: int = 0, stage: Optional[str] = None):
        self.queries = queries
        super().__init__(message, stage=stage)


class JobFailedError(GenerationError):
    """The service reported the job as failed."""

    def __init__(self, reason: str, job_id: Optional[str] = None, stage: Optional[str] = None):
        self.reason = reason
        self.job_id = job_id
        super().__init__(reason, stage=stage)


class DownloadError(GenerationError):
    """The result could not be transferred or failed the size check."""


class GenerationCanceled(GenerationError):
    """The caller (or the service) canceled the job."""
