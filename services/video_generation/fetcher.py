"""
Artifact Fetcher - downloads a finished video to local storage.

Bytes are streamed into a hidden ``.part`` file next to the destination and
only linked into place once the transfer is complete and the size checks
out. A failed or canceled download leaves nothing behind.
"""

import logging
import os
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import aiofiles
import httpx

from core.config import Config, get_config

from .errors import DownloadError
from .models import STAGE_DOWNLOAD, CancelToken, DownloadedArtifact, ProgressKind
from .progress import ProgressCallback, emit_progress

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".mp4"
PROGRESS_MILESTONES = (25, 50, 75)


def _safe_stem(job_id: Optional[str]) -> str:
    if not job_id:
        return f"video_{uuid.uuid4().hex[:8]}"
    return re.sub(r"[^A-Za-z0-9_-]", "_", job_id)


def _extension_for(url: str) -> str:
    suffix = Path(urlparse(url).path).suffix.lower()
    if re.fullmatch(r"\.[a-z0-9]{1,5}", suffix):
        return suffix
    return DEFAULT_EXTENSION


def _format_mb(size: int) -> str:
    return f"{size / 1024 / 1024:.1f} MB"


def _discard(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def materialize(tmp_path: Path, directory: Path, stem: str, extension: str) -> Path:
    """
    Move a finished temp file to the first free ``stem[_n]extension`` name.

    Uses an exclusive hard link so an existing file is never overwritten.
    Filesystems without hard links fall back to a checked rename.
    """
    attempt = 0
    while True:
        name = f"{stem}{extension}" if attempt == 0 else f"{stem}_{attempt}{extension}"
        final_path = directory / name
        attempt += 1
        try:
            os.link(tmp_path, final_path)
        except FileExistsError:
            continue
        except OSError as e:
            logger.debug(f"Hard link unavailable ({e}), falling back to rename")
            if final_path.exists():
                continue
            os.rename(tmp_path, final_path)
            return final_path
        _discard(tmp_path)
        return final_path


class ArtifactFetcher:
    """
    Streams a result URL into a destination directory.

    Usage:
        fetcher = ArtifactFetcher()
        artifact = await fetcher.download(url, "./output", on_progress, job_id="abc")
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            # No read timeout cap on large files, only on connect
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.api.request_timeout, read=None)
            )
        return self._http_client

    async def close(self):
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def download(
        self,
        result_url: str,
        destination_dir: str,
        on_progress: Optional[ProgressCallback] = None,
        job_id: Optional[str] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> DownloadedArtifact:
        """
        Download a result file.

        Args:
            result_url: URL of the finished video
            destination_dir: Directory to save into (created if missing)
            on_progress: Observer for start/periodic/complete notifications
            job_id: Used to name the file
            cancel_token: Checked between chunks

        Returns:
            DownloadedArtifact for the fully written file

        Raises:
            DownloadError: transfer failed or size did not match
            GenerationCanceled: the caller canceled mid-transfer
        """
        directory = Path(destination_dir)
        directory.mkdir(parents=True, exist_ok=True)

        stem = f"{_safe_stem(job_id)}_{datetime.now().strftime('%Y%m%d-%H%M%S')}"
        extension = _extension_for(result_url)
        tmp_path = directory / f".{stem}.{uuid.uuid4().hex[:8]}.part"
        storage = self.config.storage

        client = await self._get_client()
        try:
            async with client.stream("GET", result_url, follow_redirects=True) as response:
                if response.status_code != 200:
                    raise DownloadError(f"Download returned HTTP {response.status_code}")

                declared = _content_length(response)
                size_text = f" ({_format_mb(declared)})" if declared is not None else ""
                emit_progress(
                    on_progress,
                    STAGE_DOWNLOAD,
                    ProgressKind.DOWNLOAD_STARTED,
                    f"Downloading video{size_text}",
                    percent=0.0,
                )

                written = 0
                milestones = list(PROGRESS_MILESTONES)
                next_report = storage.progress_step_bytes

                async with aiofiles.open(tmp_path, "wb") as f:
                    async for chunk in response.aiter_bytes(storage.chunk_size):
                        if cancel_token:
                            cancel_token.raise_if_cancelled(STAGE_DOWNLOAD)
                        await f.write(chunk)
                        written += len(chunk)

                        if declared:
                            percent = written * 100 / declared
                            while milestones and percent >= milestones[0]:
                                mark = milestones.pop(0)
                                emit_progress(
                                    on_progress,
                                    STAGE_DOWNLOAD,
                                    ProgressKind.DOWNLOAD_PROGRESS,
                                    f"Downloaded {mark}%",
                                    percent=float(mark),
                                )
                        elif written >= next_report:
                            emit_progress(
                                on_progress,
                                STAGE_DOWNLOAD,
                                ProgressKind.DOWNLOAD_PROGRESS,
                                f"Downloaded {_format_mb(written)}",
                            )
                            next_report += storage.progress_step_bytes

                # Content-Length counts encoded bytes when the body is compressed
                if response.headers.get("Content-Encoding"):
                    received = response.num_bytes_downloaded
                else:
                    received = written

            if declared is not None and received != declared:
                raise DownloadError(
                    f"Size mismatch: expected {declared} bytes, received {received}"
                )

            on_disk = tmp_path.stat().st_size
            if on_disk != written:
                raise DownloadError(f"Size mismatch: wrote {written} bytes, found {on_disk} on disk")

            final_path = materialize(tmp_path, directory, stem, extension)

        except httpx.TimeoutException as e:
            raise DownloadError(f"Download timed out: {type(e).__name__}")
        except httpx.RequestError as e:
            raise DownloadError(f"Download failed: {type(e).__name__}: {e}")
        except OSError as e:
            raise DownloadError(f"Could not write video: {e}")
        finally:
            _discard(tmp_path)

        logger.info(f"Video downloaded: {final_path} ({_format_mb(written)})")
        emit_progress(
            on_progress,
            STAGE_DOWNLOAD,
            ProgressKind.DOWNLOAD_COMPLETE,
            f"Saved to: {final_path}",
            percent=100.0,
        )
        return DownloadedArtifact(local_path=str(final_path), size_bytes=written)


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None
