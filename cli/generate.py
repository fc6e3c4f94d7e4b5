"""
CLI front end for a single generation.

Stands in for the editor panel: prints each progress event as a status
line and reports the saved file path.

Usage:
    python main.py generate --prompt "a cat flying" --mode i2v --start-image cat.png
"""

import asyncio
import dataclasses
import signal
import sys
from typing import Optional

from core.config import get_config
from core.credentials import CredentialStore
from services.video_generation import (
    CancelToken,
    GenerationError,
    GenerationMode,
    GenerationOrchestrator,
    LayerInfo,
    ProgressEvent,
    ProgressKind,
    build_request,
)


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"


KIND_COLORS = {
    ProgressKind.SUBMITTED: Colors.CYAN,
    ProgressKind.SUCCEEDED: Colors.GREEN,
    ProgressKind.DOWNLOAD_COMPLETE: Colors.GREEN,
    ProgressKind.POLL_ERROR: Colors.YELLOW,
    ProgressKind.UNKNOWN_STATUS: Colors.YELLOW,
    ProgressKind.FAILED: Colors.RED,
    ProgressKind.CANCELED: Colors.RED,
    ProgressKind.ERROR: Colors.RED,
}


def colored(text: str, color: str) -> str:
    """Apply color to text."""
    if not sys.stdout.isatty():
        return text
    return f"{color}{text}{Colors.RESET}"


def format_event(event: ProgressEvent) -> str:
    """Status line in the panel's ``> message`` style."""
    line = f"> {event.message}"
    color = KIND_COLORS.get(event.kind)
    return colored(line, color) if color else line


async def run_generation(
    prompt: str,
    mode: str = "t2v",
    duration: int = 5,
    negative_prompt: Optional[str] = None,
    start_image: Optional[str] = None,
    end_image: Optional[str] = None,
    output_dir: Optional[str] = None,
    poll_interval: Optional[float] = None,
    timeout: Optional[float] = None,
    api_key: Optional[str] = None,
) -> Optional[str]:
    """
    Run one generation and return the saved path, or None on failure.
    """
    config = get_config()
    polling = config.polling
    if poll_interval is not None:
        polling = dataclasses.replace(polling, interval_seconds=poll_interval)
    if timeout is not None:
        polling = dataclasses.replace(polling, timeout_seconds=timeout)
    # Per-call copy; the shared config keeps its defaults
    config = dataclasses.replace(config, polling=polling)

    api_key = api_key or CredentialStore().get_api_key()
    if not api_key:
        print(colored("Please set the Replicate API key first: python main.py set-key <token>", Colors.RED))
        return None

    generation_mode = GenerationMode(mode)
    start_layer = LayerInfo(name="start", source_path=start_image) if start_image else None
    end_layer = LayerInfo(name="end", source_path=end_image) if end_image else None

    try:
        request = build_request(
            generation_mode,
            prompt,
            duration_seconds=duration,
            negative_prompt=negative_prompt,
            start_layer=start_layer,
            end_layer=end_layer,
        )
    except GenerationError as e:
        print(colored(f"> ERROR: {e.describe()}", Colors.RED))
        return None

    cancel_token = CancelToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_token.cancel)
    except (NotImplementedError, RuntimeError):
        pass  # Windows event loops

    print(f"> Preparing generation ({generation_mode.value.upper()}, {duration}s)...")

    def on_progress(event: ProgressEvent):
        print(format_event(event), flush=True)

    try:
        async with GenerationOrchestrator(config=config) as orchestrator:
            artifact = await orchestrator.generate(
                request,
                api_key,
                on_progress,
                cancel_token=cancel_token,
                destination_dir=output_dir,
            )
    except GenerationError:
        return None
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    print(colored(f"Done: {artifact.local_path} ({artifact.size_bytes} bytes)", Colors.BOLD))
    return artifact.local_path
