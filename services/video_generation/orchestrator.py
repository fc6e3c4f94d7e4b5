"""
Generation Orchestrator - submit, poll, download as one call.

Each call runs through IDLE -> SUBMITTING -> POLLING -> DOWNLOADING -> DONE.
The first failing stage ends the call in FAILED; the raised error carries
the stage name and the observer gets exactly one terminal error event.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from core.config import Config, get_config

from .client import GenerationClient
from .errors import GenerationCanceled, GenerationError, JobFailedError
from .fetcher import ArtifactFetcher
from .models import (
    STAGE_DOWNLOAD,
    STAGE_POLLING,
    STAGE_SUBMISSION,
    CancelToken,
    DownloadedArtifact,
    GenerationRequest,
    JobHandle,
    JobState,
    ProgressKind,
)
from .poller import JobPoller
from .progress import ProgressCallback, emit_progress

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    """Lifecycle of one orchestration call."""
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    DOWNLOADING = "downloading"
    DONE = "done"
    FAILED = "failed"


STAGE_FOR_STATE = {
    RunState.SUBMITTING: STAGE_SUBMISSION,
    RunState.POLLING: STAGE_POLLING,
    RunState.DOWNLOADING: STAGE_DOWNLOAD,
}

ALLOWED_TRANSITIONS = {
    RunState.IDLE: {RunState.SUBMITTING},
    RunState.SUBMITTING: {RunState.POLLING, RunState.FAILED},
    RunState.POLLING: {RunState.DOWNLOADING, RunState.FAILED},
    RunState.DOWNLOADING: {RunState.DONE, RunState.FAILED},
    RunState.DONE: set(),
    RunState.FAILED: set(),
}


@dataclass
class GenerationRun:
    """Per-call state. Never shared between calls."""
    state: RunState = RunState.IDLE
    handle: Optional[JobHandle] = None
    artifact: Optional[DownloadedArtifact] = None
    failed_stage: Optional[str] = None
    error: Optional[GenerationError] = None
    history: list[RunState] = field(default_factory=lambda: [RunState.IDLE])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def stage(self) -> Optional[str]:
        return STAGE_FOR_STATE.get(self.state)

    def transition(self, new_state: RunState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Run: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def fail(self, error: GenerationError):
        self.failed_stage = self.stage
        self.error = error
        self.transition(RunState.FAILED)


class GenerationOrchestrator:
    """
    Composes client, poller and fetcher.

    Usage:
        orchestrator = GenerationOrchestrator()
        artifact = await orchestrator.generate(request, api_key, print)
    """

    def __init__(
        self,
        client: Optional[GenerationClient] = None,
        poller: Optional[JobPoller] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        config: Optional[Config] = None,
    ):
        self.config = config or get_config()
        self.client = client or GenerationClient(self.config)
        self.poller = poller or JobPoller(self.client, self.config)
        self.fetcher = fetcher or ArtifactFetcher(self.config)

    async def close(self):
        await self.client.close()
        await self.fetcher.close()

    async def __aenter__(self) -> "GenerationOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def generate(
        self,
        request: GenerationRequest,
        credential: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        destination_dir: Optional[str] = None,
        run: Optional[GenerationRun] = None,
    ) -> DownloadedArtifact:
        """
        Generate a video and download it.

        Args:
            request: What to generate
            credential: API key
            on_progress: Observer for this call's progress stream
            cancel_token: Cancels the call at the next suspension point
            destination_dir: Where to save the video (config default)
            run: Optional state holder, for callers that want to inspect it

        Returns:
            DownloadedArtifact for the saved video

        Raises:
            GenerationError: subclass per failure kind, with ``stage`` set
        """
        run = run or GenerationRun()
        destination_dir = destination_dir or self.config.storage.output_dir

        try:
            run.transition(RunState.SUBMITTING)
            if cancel_token:
                cancel_token.raise_if_cancelled()
            run.handle = await self.client.submit(request, credential)
            emit_progress(
                on_progress,
                STAGE_SUBMISSION,
                ProgressKind.SUBMITTED,
                f"Job submitted: {run.handle.remote_id}",
            )

            run.transition(RunState.POLLING)
            status = await self.poller.wait_until_done(
                run.handle,
                credential,
                on_progress,
                cancel_token=cancel_token,
            )

            if status.state == JobState.FAILED:
                raise JobFailedError(status.reason or "Generation failed", job_id=run.handle.remote_id)
            if status.state == JobState.CANCELED:
                raise GenerationCanceled(f"Job {run.handle.remote_id} was canceled by the service")
            if not status.result_url:
                raise JobFailedError("Job succeeded but returned no video URL", job_id=run.handle.remote_id)

            run.transition(RunState.DOWNLOADING)
            if cancel_token:
                cancel_token.raise_if_cancelled()
            run.artifact = await self.fetcher.download(
                status.result_url,
                destination_dir,
                on_progress,
                job_id=run.handle.remote_id,
                cancel_token=cancel_token,
            )

            run.transition(RunState.DONE)
            return run.artifact

        except GenerationError as e:
            stage = run.stage
            if e.stage is None:
                e.stage = stage
            run.fail(e)
            logger.error(f"Generation failed during {stage}: {e.message}")

            aborted = cancel_token is not None and cancel_token.cancelled
            if aborted and run.handle is not None and stage == STAGE_POLLING:
                await self._cancel_remote(run.handle, credential)

            emit_progress(on_progress, stage, ProgressKind.ERROR, f"ERROR: {e.describe()}")
            raise

    async def _cancel_remote(self, handle: JobHandle, credential: str):
        if not self.config.cancel_remote_on_abort:
            return
        try:
            await self.client.cancel(handle, credential)
        except GenerationError as e:
            logger.warning(f"Could not cancel job {handle.remote_id}: {e}")
