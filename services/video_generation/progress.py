"""Progress callback plumbing shared by the generation components."""

import logging
from typing import Callable, Optional

from .models import ProgressEvent, ProgressKind

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


def emit_progress(
    on_progress: Optional[ProgressCallback],
    stage: str,
    kind: ProgressKind,
    message: str,
    percent: Optional[float] = None,
) -> ProgressEvent:
    """Build an event and hand it to the observer.

    A failing observer is logged and otherwise ignored so the UI can never
    break a running job.
    """
    event = ProgressEvent(stage=stage, kind=kind, message=message, percent=percent)
    logger.debug(f"[{stage}] {kind.value}: {message}")
    if on_progress:
        try:
            on_progress(event)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
    return event
