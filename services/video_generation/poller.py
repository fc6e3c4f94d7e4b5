"""
Job Poller - waits for a submitted job to reach a terminal state.

Queries immediately, then on a fixed interval. Every query result is
reported to the observer before the next wait. Transient network errors
are tolerated up to a consecutive-failure limit.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from core.config import Config, get_config

from .client import GenerationClient
from .errors import NetworkError, PollingTimeoutError, ValidationError
from .models import (
    STAGE_POLLING,
    STATE_PROGRESS_KINDS,
    CancelToken,
    JobHandle,
    JobStatus,
    ProgressKind,
)
from .progress import ProgressCallback, emit_progress

logger = logging.getLogger(__name__)


class JobPoller:
    """
    Polls a job until it succeeds, fails or is canceled.

    Usage:
        poller = JobPoller(client)
        status = await poller.wait_until_done(handle, api_key, on_progress)
    """

    def __init__(
        self,
        client: GenerationClient,
        config: Optional[Config] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.config = config or get_config()
        self._sleep = sleep
        self._clock = clock

    async def wait_until_done(
        self,
        handle: JobHandle,
        credential: str,
        on_progress: Optional[ProgressCallback] = None,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> JobStatus:
        """
        Poll until the job reaches a terminal status.

        Args:
            handle: The submitted job
            credential: API key
            on_progress: Observer, called once per query
            interval: Seconds between queries (config default)
            timeout: Wall-clock budget in seconds (config default)
            cancel_token: Checked before every query

        Returns:
            A terminal JobStatus (SUCCEEDED, FAILED or CANCELED)

        Raises:
            PollingTimeoutError: no terminal status within the budget
            NetworkError: too many consecutive failed queries
            GenerationCanceled: the caller canceled between queries
            ValidationError: the interval is not positive
        """
        polling = self.config.polling
        interval = polling.interval_seconds if interval is None else interval
        timeout = polling.timeout_seconds if timeout is None else timeout
        max_errors = polling.max_consecutive_errors

        if interval <= 0:
            raise ValidationError(f"Poll interval must be positive, got {interval}", stage=STAGE_POLLING)

        started = self._clock()
        queries = 0
        consecutive_errors = 0

        while True:
            if cancel_token:
                cancel_token.raise_if_cancelled(STAGE_POLLING)

            queries += 1
            try:
                status = await self.client.get_status(handle, credential)
            except NetworkError as e:
                consecutive_errors += 1
                logger.warning(
                    f"Poll error for job {handle.remote_id} "
                    f"(attempt {consecutive_errors}/{max_errors}): {e}"
                )
                emit_progress(
                    on_progress,
                    STAGE_POLLING,
                    ProgressKind.POLL_ERROR,
                    f"Network error while polling ({consecutive_errors}/{max_errors}): {e}",
                )
                if consecutive_errors >= max_errors:
                    raise NetworkError(
                        f"Polling failed after {consecutive_errors} consecutive errors: {e}"
                    )
            else:
                consecutive_errors = 0
                emit_progress(
                    on_progress,
                    STAGE_POLLING,
                    STATE_PROGRESS_KINDS[status.state],
                    f"Job {handle.remote_id}: {status.describe()}",
                )
                if status.is_terminal:
                    logger.info(
                        f"Job {handle.remote_id} finished as {status.state.value} "
                        f"after {queries} queries"
                    )
                    return status

            # Stop once the next query would land past the budget
            elapsed = self._clock() - started
            if elapsed + interval > timeout:
                raise PollingTimeoutError(
                    f"Job {handle.remote_id} did not finish within {timeout:g} seconds",
                    queries=queries,
                )

            await self._sleep(interval)
